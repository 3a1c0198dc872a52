"""
Custom exception classes for the mislabel QC pipeline.
"""
from typing import Optional


class PipelineError(Exception):
    """Base class for exceptions in this pipeline."""

    def __init__(self, message: str, stage: Optional[str] = None):
        self.stage = stage
        self.message = message
        super().__init__(f"[{stage}] {message}" if stage else message)


class DataValidationError(PipelineError):
    """Raised when input data validation fails."""
    pass


class InvalidInputError(DataValidationError):
    """Raised for malformed, empty or non-finite feature data."""
    pass


class DimensionMismatchError(DataValidationError):
    """Raised when a label or identifier vector does not match the number of rows."""
    pass


class DegenerateInputError(PipelineError):
    """Raised when a distance matrix is not a valid dissimilarity matrix."""
    pass


class InvalidClusterCountError(PipelineError):
    """Raised when a requested cluster count cannot be cut from the tree."""
    pass


class TooManyCategoriesError(PipelineError):
    """Raised when label cardinality exceeds the alignment ceiling."""
    pass
