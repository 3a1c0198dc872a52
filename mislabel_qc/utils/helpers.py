"""
Utility functions and logging configuration.
"""
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from mislabel_qc.config.pipeline_config import Config, config as default_config
from mislabel_qc.utils.custom_exceptions import DimensionMismatchError, InvalidInputError


def setup_logging(cfg: Optional[Config] = None) -> None:
    """Configures the logging for the entire application."""
    cfg = cfg or default_config
    log_file_path = Path(cfg.log_dir) / cfg.log_file
    # Ensure logs directory exists
    log_file_path.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=cfg.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file_path)
        ],
        force=True,
    )


def as_feature_matrix(X, stage: str = "input") -> np.ndarray:
    """
    Converts a DataFrame or array-like to a validated 2-D float matrix.

    Args:
        X: Feature table, one row per observation.
        stage: Pipeline stage name used in error messages.

    Returns:
        A new float64 array of shape (n, D).

    Raises:
        InvalidInputError: If the data is empty, not 2-D, not numeric or
            contains NaN/inf values.
    """
    if isinstance(X, pd.DataFrame):
        non_numeric = [c for c in X.columns if not pd.api.types.is_numeric_dtype(X[c])]
        if non_numeric:
            raise InvalidInputError(f"Non-numeric feature columns: {non_numeric}", stage=stage)
        values = X.to_numpy(dtype=float, copy=True)
    else:
        try:
            values = np.array(X, dtype=float, copy=True)
        except (TypeError, ValueError) as e:
            raise InvalidInputError(f"Feature data is not numeric: {e}", stage=stage) from e

    if values.ndim != 2:
        raise InvalidInputError(f"Feature data must be 2-D, got {values.ndim}-D", stage=stage)
    n, d = values.shape
    if n < 2:
        raise InvalidInputError(f"At least 2 observations are required, got {n}", stage=stage)
    if d < 1:
        raise InvalidInputError("At least 1 feature column is required", stage=stage)

    bad_rows = np.flatnonzero(~np.isfinite(values).all(axis=1))
    if bad_rows.size:
        preview = ", ".join(str(i) for i in bad_rows[:10])
        raise InvalidInputError(
            f"{bad_rows.size} row(s) contain missing or non-finite values (rows: {preview})",
            stage=stage,
        )
    return values


def check_length(values: Sequence, n_rows: int, name: str, stage: str) -> None:
    """Raise DimensionMismatchError when `values` is not aligned with the rows."""
    if len(values) != n_rows:
        raise DimensionMismatchError(
            f"Length of '{name}' ({len(values)}) does not match number of rows ({n_rows})",
            stage=stage,
        )
