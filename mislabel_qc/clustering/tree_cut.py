"""
Tree Cutter

Turns a merge tree into a flat partition with exactly k groups.
"""
import logging

import numpy as np

from mislabel_qc.clustering.linkage import MergeTree
from mislabel_qc.utils.custom_exceptions import InvalidClusterCountError

logger = logging.getLogger(__name__)

STAGE = "tree_cut"


def cut_tree(tree: MergeTree, k: int) -> np.ndarray:
    """
    Cut `tree` into `k` flat clusters.

    The first n-k merges are applied (equivalently, the k-1 highest merges are
    undone). Cluster IDs run from 1 to k in order of first occurrence among
    observations 0..n-1.

    Args:
        tree: Merge tree from `ward_linkage`.
        k: Requested number of clusters, 1 <= k <= n.

    Returns:
        Integer array of length n with values in 1..k.

    Raises:
        InvalidClusterCountError: If k is outside [1, n].
    """
    n = tree.n_observations
    if isinstance(k, bool) or not isinstance(k, (int, np.integer)):
        raise InvalidClusterCountError(f"Cluster count must be an integer, got {k!r}", stage=STAGE)
    if k < 1 or k > n:
        raise InvalidClusterCountError(
            f"Cannot cut {n} observations into {k} clusters (k must be in [1, {n}])",
            stage=STAGE,
        )

    # Union-find over leaves; merge node n+s is represented by a leaf root
    parent = np.arange(n)

    def find(x: int) -> int:
        root = x
        while parent[root] != root:
            root = parent[root]
        while parent[x] != root:
            parent[x], x = root, parent[x]
        return root

    representative = np.empty(n - 1, dtype=int)

    def leaf_of(node: int) -> int:
        return node if node < n else representative[node - n]

    for step in range(n - k):
        left, right = tree.merges[step]
        ra, rb = find(leaf_of(left)), find(leaf_of(right))
        parent[max(ra, rb)] = min(ra, rb)
        representative[step] = min(ra, rb)

    roots = np.array([find(x) for x in range(n)])
    _, first_index, inverse = np.unique(roots, return_index=True, return_inverse=True)
    # Rank components by the first observation that belongs to them
    rank = np.empty(len(first_index), dtype=int)
    rank[np.argsort(first_index)] = np.arange(1, len(first_index) + 1)
    labels = rank[inverse]

    logger.debug(f"Cut tree into {k} clusters: sizes {np.bincount(labels)[1:].tolist()}")
    return labels
