"""
Test cases for aligning cluster IDs with prior class labels

Optimality is checked against an exhaustive search over all assignments of
the padded contingency table.
"""
import itertools
import logging

import numpy as np
import pytest

from mislabel_qc.clustering.alignment import (
    align_clusters_to_labels,
    contingency_table,
    encode_labels,
    pad_to_square,
    reduce_clusters,
    solve_assignment,
)
from mislabel_qc.utils.custom_exceptions import (
    DimensionMismatchError,
    InvalidInputError,
    TooManyCategoriesError,
)


def brute_force_best(labels, clusters) -> int:
    label_codes, label_values = encode_labels(labels)
    cluster_codes, cluster_values = encode_labels(clusters)
    table = pad_to_square(
        contingency_table(label_codes, cluster_codes, len(label_values), len(cluster_values))
    )
    size = table.shape[0]
    return max(
        sum(table[i, p] for i, p in enumerate(perm))
        for perm in itertools.permutations(range(size))
    )


class TestAlignmentBasics:
    """Scenarios with an obvious answer"""

    def test_identity(self):
        result = align_clusters_to_labels([1, 1, 1, 2, 2, 2], [1, 1, 1, 2, 2, 2])
        assert result.aligned.tolist() == [1, 1, 1, 2, 2, 2]
        assert result.n_matched == 6
        assert result.accuracy == 1.0
        assert result.sentinels == []

    def test_swapped_ids(self):
        result = align_clusters_to_labels([2, 2, 2, 1, 1, 1], [1, 1, 1, 2, 2, 2])
        assert result.aligned.tolist() == [2, 2, 2, 1, 1, 1]
        assert result.mapping == {1: 2, 2: 1}

    def test_string_labels(self):
        labels = ["ClassA"] * 4 + ["ClassB"] * 4
        clusters = [2, 2, 2, 1, 1, 1, 1, 1]
        result = align_clusters_to_labels(labels, clusters)
        assert result.aligned.tolist() == ["ClassA"] * 3 + ["ClassB"] * 5
        assert result.n_matched == 7

    def test_contingency_frame(self):
        result = align_clusters_to_labels(["a", "a", "b"], [1, 2, 2])
        table = result.contingency
        assert table.index.name == "label"
        assert table.columns.name == "cluster"
        assert table.loc["a", 1] == 1
        assert table.loc["b", 2] == 1
        assert table.to_numpy().sum() == 3


class TestPadding:
    """Unequal cardinalities"""

    def test_more_clusters_than_labels(self):
        labels = [1, 1, 1, 1, 2, 2]
        clusters = [1, 1, 2, 2, 3, 3]
        result = align_clusters_to_labels(labels, clusters)

        assert result.padded_size == 3
        assert result.sentinels == [3]
        assert result.mapping[3] == 2
        assert sorted(result.mapping.values()) == [1, 2, 3]
        # Every observation has a definite aligned value
        assert set(result.aligned.tolist()) <= {1, 2, 3}
        assert result.n_matched == 4

    def test_sentinels_are_distinct_per_phantom_cluster(self):
        labels = [1, 1, 1, 2, 2, 2, 2, 2]
        clusters = [1, 1, 1, 2, 2, 3, 3, 4]
        result = align_clusters_to_labels(labels, clusters)
        assert result.sentinels == [3, 4]
        assert len(set(result.mapping.values())) == 4

    def test_string_sentinels(self):
        labels = ["x", "x", "y", "y", "y"]
        clusters = [1, 1, 2, 2, 3]
        result = align_clusters_to_labels(labels, clusters)
        assert result.sentinels == ["unmatched_1"]
        assert result.mapping[3] == "unmatched_1"

    def test_string_sentinel_avoids_existing_label(self):
        labels = ["unmatched_1", "unmatched_1", "y", "y", "y"]
        clusters = [1, 1, 2, 2, 3]
        result = align_clusters_to_labels(labels, clusters)
        assert result.sentinels == ["unmatched_2"]

    def test_more_labels_than_clusters(self):
        labels = [1, 1, 2, 2, 3, 3]
        clusters = [1, 1, 1, 1, 2, 2]
        result = align_clusters_to_labels(labels, clusters)
        assert result.padded_size == 3
        assert result.sentinels == []
        assert result.mapping[2] == 3
        assert result.n_matched == 4


class TestOptimality:
    """Matches the exhaustive optimum on random tables"""

    @pytest.mark.parametrize("seed", range(12))
    def test_against_brute_force(self, seed):
        rng = np.random.default_rng(seed)
        n_labels = int(rng.integers(1, 6))
        n_clusters = int(rng.integers(1, 7))
        labels = rng.integers(1, n_labels + 1, size=40)
        clusters = rng.integers(1, n_clusters + 1, size=40)

        result = align_clusters_to_labels(labels, clusters)
        assert result.n_matched == brute_force_best(labels, clusters)

        exhaustive = align_clusters_to_labels(labels, clusters, solver="permutation")
        assert exhaustive.n_matched == result.n_matched

    def test_idempotent(self):
        rng = np.random.default_rng(3)
        labels = np.repeat([1, 2, 3], 10)
        clusters = np.repeat([3, 1, 2], 10)
        clusters[rng.choice(30, size=4, replace=False)] = 1
        first = align_clusters_to_labels(labels, clusters)
        second = align_clusters_to_labels(labels, first.aligned)
        assert second.aligned.tolist() == first.aligned.tolist()
        assert second.n_matched == first.n_matched

    def test_deterministic(self):
        labels = [1, 2, 1, 2, 3, 3, 1]
        clusters = [1, 1, 2, 2, 3, 3, 3]
        a = align_clusters_to_labels(labels, clusters)
        b = align_clusters_to_labels(labels, clusters)
        assert a.aligned.tolist() == b.aligned.tolist()


class TestSolveAssignment:
    def test_hungarian_on_square_table(self):
        table = np.array([[0, 5, 1], [4, 0, 0], [0, 1, 3]])
        assert solve_assignment(table).tolist() == [1, 0, 2]

    def test_permutation_keeps_first_best(self):
        table = np.ones((3, 3), dtype=int)
        assert solve_assignment(table, solver="permutation").tolist() == [0, 1, 2]

    def test_permutation_ceiling(self):
        with pytest.raises(TooManyCategoriesError):
            solve_assignment(np.eye(4), solver="permutation", permutation_ceiling=3)

    def test_unknown_solver(self):
        with pytest.raises(ValueError):
            solve_assignment(np.eye(2), solver="greedy")

    def test_non_square(self):
        with pytest.raises(ValueError):
            solve_assignment(np.zeros((2, 3)))


class TestClusterReduction:
    def test_merges_smallest_clusters(self):
        codes = np.array([0, 0, 0, 1, 2, 2, 3])
        reduced = reduce_clusters(codes, 3)
        assert reduced.tolist() == [0, 0, 0, 1, 2, 2, 1]

    def test_alignment_reduces_above_ceiling(self, caplog):
        labels = [1] * 10 + [2] * 10
        clusters = list(range(1, 15)) + [1] * 6
        with caplog.at_level(logging.WARNING):
            result = align_clusters_to_labels(labels, clusters, max_clusters=12)
        assert result.reduced
        assert len(set(result.clusters.tolist())) == 12
        assert "exceed the alignment ceiling" in caplog.text


class TestAlignmentValidation:
    def test_too_many_label_categories(self):
        labels = list(range(10)) * 2
        clusters = [1, 2] * 10
        with pytest.raises(TooManyCategoriesError):
            align_clusters_to_labels(labels, clusters)

    def test_length_mismatch(self):
        with pytest.raises(DimensionMismatchError):
            align_clusters_to_labels([1, 2, 3], [1, 2])

    def test_missing_label(self):
        with pytest.raises(InvalidInputError):
            align_clusters_to_labels([1, None, 2], [1, 1, 2])

    def test_mixed_type_labels(self):
        result = align_clusters_to_labels([1, "a", 1, "a"], [1, 2, 1, 2])
        assert result.n_matched == 4
