"""
Distance Engine

Computes the symmetric pairwise dissimilarity matrix that feeds the Ward
linkage builder. Metric names follow R's `dist()` (maximum, binary, ...);
scipy names are accepted as aliases.
"""
import logging
from typing import Optional

import numpy as np
from joblib import Parallel, delayed
from scipy.spatial.distance import cdist

from mislabel_qc.utils.custom_exceptions import InvalidInputError
from mislabel_qc.utils.helpers import as_feature_matrix

logger = logging.getLogger(__name__)

STAGE = "distance"

# R dist() name -> scipy cdist metric
_METRIC_ALIASES = {
    "euclidean": "euclidean",
    "manhattan": "cityblock",
    "cityblock": "cityblock",
    "maximum": "chebyshev",
    "chebyshev": "chebyshev",
    "minkowski": "minkowski",
    "binary": "jaccard",
    "jaccard": "jaccard",
    "canberra": "canberra",
}


def _canberra_block(rows: np.ndarray, X: np.ndarray) -> np.ndarray:
    """
    Canberra distance as computed by `dist()`: terms whose numerator and denominator
    are both zero are dropped and the remaining sum is scaled by D / n_used.
    """
    n_features = X.shape[1]
    out = np.empty((rows.shape[0], X.shape[0]))
    for i, row in enumerate(rows):
        num = np.abs(X - row)
        den = np.abs(X) + np.abs(row)
        used = den > 0
        with np.errstate(divide="ignore", invalid="ignore"):
            terms = np.where(used, num / np.where(used, den, 1.0), 0.0)
        n_used = used.sum(axis=1)
        total = terms.sum(axis=1)
        out[i] = np.where(n_used > 0, total * n_features / np.maximum(n_used, 1), 0.0)
    return out


def _distance_block(rows: np.ndarray, X: np.ndarray, metric: str, p: float) -> np.ndarray:
    if metric == "canberra":
        return _canberra_block(rows, X)
    if metric == "jaccard":
        return cdist(rows != 0, X != 0, metric="jaccard")
    if metric == "minkowski":
        return cdist(rows, X, metric="minkowski", p=p)
    return cdist(rows, X, metric=metric)


def resolve_metric(metric: str) -> str:
    """Map a user-facing metric name to the scipy name used internally."""
    key = str(metric).lower()
    if key not in _METRIC_ALIASES:
        raise InvalidInputError(
            f"Unknown distance metric '{metric}'. Supported: {sorted(_METRIC_ALIASES)}",
            stage=STAGE,
        )
    return _METRIC_ALIASES[key]


def compute_distance_matrix(X, metric: str = "euclidean", p: float = 2.0,
                            n_jobs: Optional[int] = 1) -> np.ndarray:
    """
    Compute the n x n dissimilarity matrix of the rows of `X`.

    Args:
        X: Feature matrix (array-like or DataFrame) with n >= 2 rows and D >= 1 columns.
        metric: One of euclidean, manhattan, maximum, canberra, binary, minkowski
            (or the scipy aliases cityblock, chebyshev, jaccard).
        p: Power of the Minkowski distance.
        n_jobs: Number of joblib workers; rows are split into blocks.

    Returns:
        Symmetric float array with a zero diagonal.

    Raises:
        InvalidInputError: For empty, non-numeric or non-finite input, or an
            unknown metric.
    """
    values = as_feature_matrix(X, stage=STAGE)
    scipy_metric = resolve_metric(metric)
    if scipy_metric == "minkowski" and not p > 0:
        raise InvalidInputError(f"Minkowski power must be positive, got {p}", stage=STAGE)

    n = values.shape[0]
    n_jobs = n_jobs or 1
    if n_jobs == 1:
        dist = _distance_block(values, values, scipy_metric, p)
    else:
        blocks = np.array_split(np.arange(n), min(n, 32))
        parts = Parallel(n_jobs=n_jobs)(
            delayed(_distance_block)(values[idx], values, scipy_metric, p)
            for idx in blocks
        )
        dist = np.vstack(parts)

    # Exact symmetry and zero diagonal regardless of rounding in the kernels
    dist = np.maximum(dist, dist.T)
    np.fill_diagonal(dist, 0.0)
    logger.debug(f"Computed {n}x{n} {metric} distance matrix")
    return dist
