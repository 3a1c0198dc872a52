"""
Centralized Configuration Management for the Mislabel QC Pipeline.

Uses Pydantic for data validation and clear structure.
"""
from datetime import datetime
from pathlib import Path
from typing import Literal, Optional
import os

from pydantic import BaseModel, ConfigDict, field_validator

# Metric names accepted by the distance engine (R `dist` names + scipy aliases)
SUPPORTED_METRICS = (
    "euclidean", "manhattan", "maximum", "canberra", "binary", "minkowski",
    "cityblock", "chebyshev", "jaccard",
)
SUPPORTED_LINKAGE_METHODS = ("ward.D2", "ward.D")
SUPPORTED_SOLVERS = ("hungarian", "permutation")


class ClusteringConfig(BaseModel):
    """Parameters of the distance / Ward / alignment engine."""
    distance_metric: str = "euclidean"
    minkowski_p: float = 2.0
    n_jobs: int = 1                       # distance matrix only
    linkage_method: str = "ward.D2"

    # Cluster-count reduction ceiling before alignment
    max_clusters: int = 12
    # Hard ceiling on true-label cardinality after reduction
    max_label_categories: int = 9
    alignment_solver: str = "hungarian"
    # Largest padded table the permutation solver may search
    permutation_ceiling: int = 9

    model_config = ConfigDict(validate_assignment=True)

    @field_validator('distance_metric')
    @classmethod
    def metric_must_be_supported(cls, v):
        if v not in SUPPORTED_METRICS:
            raise ValueError(f"distance_metric must be one of {SUPPORTED_METRICS}, got '{v}'")
        return v

    @field_validator('linkage_method')
    @classmethod
    def linkage_method_must_be_supported(cls, v):
        if v not in SUPPORTED_LINKAGE_METHODS:
            raise ValueError(f"linkage_method must be one of {SUPPORTED_LINKAGE_METHODS}, got '{v}'")
        return v

    @field_validator('alignment_solver')
    @classmethod
    def solver_must_be_supported(cls, v):
        if v not in SUPPORTED_SOLVERS:
            raise ValueError(f"alignment_solver must be one of {SUPPORTED_SOLVERS}, got '{v}'")
        return v

    @field_validator('max_clusters', 'max_label_categories', 'permutation_ceiling')
    @classmethod
    def ceilings_must_be_positive(cls, v):
        if v < 2:
            raise ValueError(f"ceilings must be at least 2, got {v}")
        return v


class ProjectionConfig(BaseModel):
    """Parameters of the projection step that feeds the clustering engine."""
    method: Literal["umap", "pca", "none"] = "umap"
    n_neighbors: int = 15
    min_dist: float = 0.1
    n_components: int = 2
    metric: str = "euclidean"
    random_state: int = 42
    scale: bool = True
    drop_duplicates: bool = True

    model_config = ConfigDict(validate_assignment=True)

    @field_validator('n_components')
    @classmethod
    def at_least_two_components(cls, v):
        if v < 2:
            raise ValueError("projection must produce at least 2 components")
        return v


class PlotConfig(BaseModel):
    """Output settings for rendered figures."""
    file_format: str = "svg"
    width: float = 12.0
    height: float = 9.0
    dpi: int = 300
    label_points: bool = False
    heatmap_row_font_size: float = 6.0

    model_config = ConfigDict(validate_assignment=True)

    @field_validator('file_format')
    @classmethod
    def format_must_be_valid(cls, v):
        if v not in ("svg", "png"):
            raise ValueError(f"file_format must be 'svg' or 'png', got '{v}'")
        return v


class Config(BaseModel):
    """Root configuration object for a QC run."""
    project_name: str = "MislabelQC"
    run_timestamp: str = ""

    # Input column conventions
    target_column: str = "Target"
    label_column: str = "Label"
    sample_id_column: str = "SampleID"
    class_column: str = "SampleType"

    # Output
    output_dir: Path = Path("results")
    file_prefix: str = "umap_analysis"

    # Logging
    log_dir: Path = Path("logs")
    log_file: str = "pipeline.log"
    log_level: str = "INFO"

    clustering: ClusteringConfig = ClusteringConfig()
    projection: ProjectionConfig = ProjectionConfig()
    plots: PlotConfig = PlotConfig()

    model_config = ConfigDict(validate_assignment=True)

    @field_validator('log_level')
    @classmethod
    def log_level_must_be_valid(cls, v):
        valid = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
        if v.upper() not in valid:
            raise ValueError(f"log_level must be one of {valid}")
        return v.upper()


def get_base_path() -> Path:
    """Base directory for default outputs; `QC_PIPELINE_ROOT` overrides the cwd."""
    override: Optional[str] = os.getenv('QC_PIPELINE_ROOT')
    return Path(override) if override else Path.cwd()


BASE_PATH = get_base_path()

config = Config(
    run_timestamp=datetime.now().strftime("%Y%m%d_%H%M%S"),
    output_dir=BASE_PATH / "results",
    log_dir=BASE_PATH / "logs",
)
