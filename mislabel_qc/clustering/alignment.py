"""
Label Aligner

Renames flat cluster IDs so that they agree as much as possible with prior
class labels. The renaming is the maximum-weight perfect matching on the
(label x cluster) contingency table, padded to a square with zero rows or
columns when the two cardinalities differ.
"""
import itertools
import logging
import numbers
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy.optimize import linear_sum_assignment

from mislabel_qc.utils.custom_exceptions import (
    DimensionMismatchError,
    InvalidInputError,
    TooManyCategoriesError,
)

logger = logging.getLogger(__name__)

STAGE = "label_alignment"


@dataclass
class AlignmentResult:
    """Outcome of aligning a flat clustering with prior labels."""
    aligned: np.ndarray                 # label-space value for every observation
    mapping: Dict[Any, Any]             # cluster id -> label-space value
    assignment: np.ndarray              # padded label code -> padded cluster code
    contingency: pd.DataFrame           # labels x clusters, before padding
    clusters: np.ndarray                # cluster ids after any reduction
    n_matched: int
    accuracy: float
    solver: str
    reduced: bool = False
    sentinels: List[Any] = field(default_factory=list)

    @property
    def padded_size(self) -> int:
        return len(self.assignment)


def encode_labels(values: Sequence, name: str = "labels") -> Tuple[np.ndarray, List[Any]]:
    """
    Dense integer codes for arbitrary hashable values.

    Codes follow the sorted order of the distinct values, or first-occurrence
    order when the values cannot be compared with each other.
    """
    series = pd.Series(list(values))
    try:
        codes, uniques = pd.factorize(series, sort=True)
    except TypeError:
        codes, uniques = pd.factorize(series, sort=False)
    if (codes < 0).any():
        raise InvalidInputError(f"'{name}' contains missing values", stage=STAGE)
    return codes.astype(int), list(uniques.tolist())


def contingency_table(label_codes: np.ndarray, cluster_codes: np.ndarray,
                      n_labels: int, n_clusters: int) -> np.ndarray:
    """Counts C[i, j] of observations with label code i and cluster code j."""
    table = np.zeros((n_labels, n_clusters), dtype=int)
    np.add.at(table, (label_codes, cluster_codes), 1)
    return table


def reduce_clusters(cluster_codes: np.ndarray, ceiling: int) -> np.ndarray:
    """
    Merge the two least populated clusters until at most `ceiling` remain.

    Ties on population go to the lowest code; the merged cluster keeps the
    lower of the two codes. Returns the (non-dense) surviving code per
    observation.
    """
    codes = np.array(cluster_codes, copy=True)
    present, counts = np.unique(codes, return_counts=True)
    while len(present) > ceiling:
        order = np.lexsort((present, counts))
        a, b = sorted((present[order[0]], present[order[1]]))
        logger.debug(f"Merging cluster code {b} into {a}")
        codes[codes == b] = a
        present, counts = np.unique(codes, return_counts=True)
    return codes


def pad_to_square(table: np.ndarray) -> np.ndarray:
    """Pad the smaller side of `table` with zero rows/columns."""
    rows, cols = table.shape
    size = max(rows, cols)
    padded = np.zeros((size, size), dtype=table.dtype)
    padded[:rows, :cols] = table
    return padded


def solve_assignment(table: np.ndarray, solver: str = "hungarian",
                     permutation_ceiling: int = 9) -> np.ndarray:
    """
    Permutation sigma maximizing sum_i table[i, sigma[i]] on a square table.

    Args:
        table: Square weight matrix.
        solver: "hungarian" (scipy's Jonker-Volgenant solver) or "permutation"
            (exhaustive search, only for tables up to `permutation_ceiling`).
        permutation_ceiling: Largest table the permutation search accepts.

    Raises:
        TooManyCategoriesError: If the permutation search would exceed its ceiling.
    """
    size = table.shape[0]
    if table.shape != (size, size):
        raise ValueError(f"Assignment table must be square, got {table.shape}")

    if solver == "hungarian":
        rows, cols = linear_sum_assignment(table, maximize=True)
        sigma = np.empty(size, dtype=int)
        sigma[rows] = cols
        return sigma

    if solver == "permutation":
        if size > permutation_ceiling:
            raise TooManyCategoriesError(
                f"Permutation search over {size} categories exceeds the ceiling of {permutation_ceiling}",
                stage=STAGE,
            )
        weights = table.tolist()
        best_total, best = -1, tuple(range(size))
        for perm in itertools.permutations(range(size)):
            total = sum(weights[i][p] for i, p in enumerate(perm))
            if total > best_total:
                best_total, best = total, perm
        return np.array(best, dtype=int)

    raise ValueError(f"Unknown alignment solver '{solver}'")


def _sentinel_labels(label_values: List[Any], count: int) -> List[Any]:
    """Labels for clusters matched to padded (non-existent) classes."""
    numeric = all(
        isinstance(v, numbers.Number) and not isinstance(v, bool) for v in label_values
    )
    if numeric and label_values:
        top = max(label_values)
        return [top + r for r in range(1, count + 1)]

    taken = set(label_values)
    sentinels, r = [], 1
    while len(sentinels) < count:
        candidate = f"unmatched_{r}"
        if candidate not in taken:
            sentinels.append(candidate)
        r += 1
    return sentinels


def align_clusters_to_labels(true_labels: Sequence, clusters: Sequence,
                             max_clusters: int = 12,
                             max_label_categories: int = 9,
                             solver: str = "hungarian",
                             permutation_ceiling: int = 9) -> AlignmentResult:
    """
    Rename cluster IDs to the label values they agree with best.

    Args:
        true_labels: Prior class per observation (any hashable values).
        clusters: Flat cluster ID per observation.
        max_clusters: Clusters beyond this count are merged (smallest first)
            before alignment.
        max_label_categories: Hard ceiling on the number of distinct labels.
        solver: "hungarian" or "permutation".
        permutation_ceiling: Size limit of the permutation solver.

    Returns:
        AlignmentResult whose `aligned` values live in the label space.
        Clusters matched to a padded label receive sentinel labels that never
        collide with a real label.

    Raises:
        DimensionMismatchError: If the two vectors differ in length.
        TooManyCategoriesError: If there are more distinct labels than allowed.
    """
    true_labels = list(true_labels)
    clusters = list(clusters)
    if len(true_labels) != len(clusters):
        raise DimensionMismatchError(
            f"{len(true_labels)} labels but {len(clusters)} cluster assignments", stage=STAGE
        )
    n = len(true_labels)
    if n == 0:
        raise InvalidInputError("Nothing to align: no observations", stage=STAGE)

    label_codes, label_values = encode_labels(true_labels, "true_labels")
    cluster_codes, cluster_values = encode_labels(clusters, "clusters")

    reduced = False
    if len(cluster_values) > max_clusters:
        logger.warning(
            f"{len(cluster_values)} clusters exceed the alignment ceiling of {max_clusters}; "
            f"merging the smallest clusters before alignment"
        )
        surviving = reduce_clusters(cluster_codes, max_clusters)
        cluster_ids = [cluster_values[c] for c in surviving]
        cluster_codes, cluster_values = encode_labels(cluster_ids, "clusters")
        reduced = True

    if len(label_values) > max_label_categories:
        raise TooManyCategoriesError(
            f"{len(label_values)} distinct labels exceed the ceiling of {max_label_categories}",
            stage=STAGE,
        )

    n_labels, n_clusters = len(label_values), len(cluster_values)
    table = contingency_table(label_codes, cluster_codes, n_labels, n_clusters)
    padded = pad_to_square(table)
    if n_labels != n_clusters:
        logger.debug(f"Padded {n_labels}x{n_clusters} contingency table to {padded.shape}")

    sigma = solve_assignment(padded, solver=solver, permutation_ceiling=permutation_ceiling)

    # Invert sigma: which (possibly padded) label each cluster code was matched to
    label_of_cluster = np.empty(len(sigma), dtype=int)
    label_of_cluster[sigma] = np.arange(len(sigma))

    phantom_clusters = [j for j in range(n_clusters) if label_of_cluster[j] >= n_labels]
    sentinels = _sentinel_labels(label_values, len(phantom_clusters))
    sentinel_of = dict(zip(phantom_clusters, sentinels))

    code_to_value = [
        label_values[label_of_cluster[j]] if j not in sentinel_of else sentinel_of[j]
        for j in range(n_clusters)
    ]
    mapping = {cluster_values[j]: code_to_value[j] for j in range(n_clusters)}
    # object dtype for mixed label types, so numbers are not coerced to strings
    aligned = pd.Series([code_to_value[c] for c in cluster_codes]).to_numpy()

    n_matched = int(sum(
        table[i, sigma[i]] for i in range(n_labels) if sigma[i] < n_clusters
    ))
    accuracy = n_matched / n

    logger.info(
        f"Aligned {n_clusters} clusters to {n_labels} labels "
        f"({solver}): {n_matched}/{n} observations agree ({accuracy:.1%})"
    )

    contingency = pd.DataFrame(
        table,
        index=pd.Index(label_values, name="label"),
        columns=pd.Index(cluster_values, name="cluster"),
    )
    return AlignmentResult(
        aligned=aligned,
        mapping=mapping,
        assignment=sigma,
        contingency=contingency,
        clusters=np.array([cluster_values[c] for c in cluster_codes]),
        n_matched=n_matched,
        accuracy=accuracy,
        solver=solver,
        reduced=reduced,
        sentinels=sentinels,
    )
