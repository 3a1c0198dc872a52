"""
Ward Linkage Builder

Agglomerative hierarchical clustering with Ward's minimum-variance criterion.
Inter-cluster distances are updated with the Lance-Williams recurrence

    d(k, i+j) = ((n_i + n_k) d(k, i) + (n_j + n_k) d(k, j) - n_k d(i, j)) / (n_i + n_j + n_k)

so raw features are never revisited after the distance matrix is built.

`ward.D2` runs the recurrence on squared dissimilarities and reports the
square root as merge height (R `hclust(method="ward.D2")`, scipy `ward`);
`ward.D` runs it on the dissimilarities as given.
"""
import logging
from dataclasses import dataclass

import numpy as np
from scipy.cluster.hierarchy import leaves_list
from scipy.spatial.distance import squareform

from mislabel_qc.utils.custom_exceptions import DegenerateInputError

logger = logging.getLogger(__name__)

STAGE = "ward_linkage"


@dataclass(frozen=True)
class MergeTree:
    """
    Binary merge tree produced by `ward_linkage`.

    Leaves are ids 0..n-1; the node created by merge ``i`` has id ``n + i``.
    Each merge row lists the smaller child id first.
    """
    merges: np.ndarray      # (n-1, 2) child ids
    heights: np.ndarray     # (n-1,) merge heights, non-decreasing
    sizes: np.ndarray       # (n-1,) observations under each new node
    n_observations: int
    method: str = "ward.D2"

    def __len__(self) -> int:
        return len(self.heights)

    def linkage_matrix(self) -> np.ndarray:
        """Return the tree as a scipy-style (n-1, 4) linkage matrix."""
        return np.column_stack([
            self.merges.astype(float), self.heights, self.sizes.astype(float)
        ])

    @property
    def order(self) -> np.ndarray:
        """Leaf order for drawing the dendrogram without crossings."""
        return leaves_list(self.linkage_matrix())

    def cut_height(self, k: int) -> float:
        """Height between the merges kept and undone when cutting into k groups."""
        n = self.n_observations
        if k <= 1:
            return float(self.heights[-1])
        if k >= n:
            return 0.0
        return float((self.heights[n - k - 1] + self.heights[n - k]) / 2.0)


def _validate_distance_matrix(distances) -> np.ndarray:
    try:
        D = np.array(distances, dtype=float, copy=True)
    except (TypeError, ValueError) as e:
        raise DegenerateInputError(f"Distance matrix is not numeric: {e}", stage=STAGE) from e

    if D.ndim == 1:
        D = squareform(D, checks=False)
    if D.ndim != 2 or D.shape[0] != D.shape[1]:
        raise DegenerateInputError(f"Distance matrix must be square, got shape {D.shape}", stage=STAGE)
    if D.shape[0] < 2:
        raise DegenerateInputError("Distance matrix must cover at least 2 observations", stage=STAGE)
    if not np.isfinite(D).all():
        raise DegenerateInputError("Distance matrix contains non-finite values", stage=STAGE)
    if (D < 0).any():
        raise DegenerateInputError("Distance matrix contains negative values", stage=STAGE)
    if not np.allclose(D, D.T, rtol=1e-7, atol=1e-9):
        raise DegenerateInputError("Distance matrix is not symmetric", stage=STAGE)

    D = (D + D.T) / 2.0
    np.fill_diagonal(D, 0.0)
    return D


def _closest_pair(work: np.ndarray, row_min: np.ndarray, node_id: np.ndarray):
    """
    Slots (i, j) of the closest pair. Ties on the minimum go to the pair with
    the lexicographically smallest (lower creation id, higher creation id).
    """
    best = row_min.min()
    rows = np.flatnonzero(row_min == best)
    pairs = []
    for r in rows:
        for c in np.flatnonzero(work[r] == best):
            if r < c:
                pairs.append((r, c))
    if len(pairs) == 1:
        return pairs[0]

    def key(pair):
        a, b = node_id[pair[0]], node_id[pair[1]]
        return (min(a, b), max(a, b))

    return min(pairs, key=key)


def ward_linkage(distances, method: str = "ward.D2") -> MergeTree:
    """
    Build the Ward merge tree for a dissimilarity matrix.

    Args:
        distances: Square symmetric non-negative matrix (or condensed vector).
        method: "ward.D2" (default) or "ward.D".

    Returns:
        MergeTree with n-1 merges in creation order.

    Raises:
        DegenerateInputError: If the matrix is not a valid dissimilarity matrix.
    """
    if method not in ("ward.D2", "ward.D"):
        raise ValueError(f"Unsupported linkage method '{method}'")

    D = _validate_distance_matrix(distances)
    n = D.shape[0]

    work = D ** 2 if method == "ward.D2" else D
    np.fill_diagonal(work, np.inf)

    active = np.ones(n, dtype=bool)
    size = np.ones(n, dtype=float)
    node_id = np.arange(n)
    row_min = work.min(axis=1)

    merges = np.empty((n - 1, 2), dtype=int)
    heights = np.empty(n - 1)
    sizes = np.empty(n - 1, dtype=int)

    for step in range(n - 1):
        i, j = _closest_pair(work, row_min, node_id)
        d_ij = work[i, j]
        n_i, n_j = size[i], size[j]

        a, b = sorted((int(node_id[i]), int(node_id[j])))
        merges[step] = (a, b)
        heights[step] = np.sqrt(d_ij) if method == "ward.D2" else d_ij
        sizes[step] = int(n_i + n_j)

        old_col_i = work[:, i].copy()
        old_col_j = work[:, j].copy()

        with np.errstate(invalid="ignore"):
            updated = ((n_i + size) * work[i] + (n_j + size) * work[j] - size * d_ij) / (n_i + n_j + size)
        # Ward is reducible: the merged cluster is never closer than d_ij
        updated = np.maximum(updated, d_ij)
        active[j] = False
        updated[~active] = np.inf
        updated[i] = np.inf

        work[i, :] = updated
        work[:, i] = updated
        work[j, :] = np.inf
        work[:, j] = np.inf

        size[i] = n_i + n_j
        size[j] = 0.0
        node_id[i] = n + step

        # Refresh cached row minima
        stale = active & ((old_col_i == row_min) | (old_col_j == row_min))
        row_min = np.where(active, np.minimum(row_min, updated), np.inf)
        stale[i] = active[i]
        if stale.any():
            row_min[stale] = work[stale].min(axis=1)

    logger.debug(f"Built {method} tree over {n} observations (max height {heights[-1]:.4g})")
    return MergeTree(merges=merges, heights=heights, sizes=sizes, n_observations=n, method=method)
