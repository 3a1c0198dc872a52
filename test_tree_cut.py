"""
Test cases for cutting a Ward tree into flat clusters
"""
import numpy as np
import pytest
from scipy.spatial.distance import cdist

from mislabel_qc.clustering.linkage import ward_linkage
from mislabel_qc.clustering.tree_cut import cut_tree
from mislabel_qc.utils.custom_exceptions import InvalidClusterCountError
from test_utils import ClusterDataGenerator, group_sizes, same_partition


@pytest.fixture
def triplet_tree():
    points = ClusterDataGenerator.two_triplets()
    return ward_linkage(cdist(points, points))


class TestCutTree:
    """Dense cluster IDs and cardinality"""

    def test_two_triplets(self, triplet_tree):
        labels = cut_tree(triplet_tree, 2)
        assert labels.tolist() == [1, 1, 1, 2, 2, 2]

    def test_ids_follow_first_occurrence(self):
        # Second group listed first
        points = ClusterDataGenerator.two_triplets()[[3, 0, 4, 1, 5, 2]]
        tree = ward_linkage(cdist(points, points))
        assert cut_tree(tree, 2).tolist() == [1, 2, 1, 2, 1, 2]

    def test_cardinality_for_every_k(self):
        points = ClusterDataGenerator.random_points(n=15, n_features=2, seed=5)
        tree = ward_linkage(cdist(points, points))
        for k in range(1, 16):
            labels = cut_tree(tree, k)
            assert len(labels) == 15
            assert sorted(set(labels.tolist())) == list(range(1, k + 1))

    def test_k_one_and_k_n(self, triplet_tree):
        assert cut_tree(triplet_tree, 1).tolist() == [1] * 6
        assert cut_tree(triplet_tree, 6).tolist() == [1, 2, 3, 4, 5, 6]

    def test_cuts_are_nested(self):
        points = ClusterDataGenerator.random_points(n=20, n_features=2, seed=9)
        tree = ward_linkage(cdist(points, points))
        for k in range(2, 20):
            coarse, fine = cut_tree(tree, k), cut_tree(tree, k + 1)
            # Every fine cluster sits inside exactly one coarse cluster
            for cluster in np.unique(fine):
                assert len(np.unique(coarse[fine == cluster])) == 1

    def test_blobs_recovered(self):
        X, y = ClusterDataGenerator.blobs((8, 5, 7), seed=1)
        tree = ward_linkage(cdist(X, X))
        labels = cut_tree(tree, 3)
        assert same_partition(labels, y)
        assert group_sizes(labels) == [5, 7, 8]

    def test_deterministic(self, triplet_tree):
        assert np.array_equal(cut_tree(triplet_tree, 3), cut_tree(triplet_tree, 3))


class TestCutTreeValidation:
    @pytest.mark.parametrize("k", [0, -1, 7])
    def test_out_of_range(self, triplet_tree, k):
        with pytest.raises(InvalidClusterCountError):
            cut_tree(triplet_tree, k)

    @pytest.mark.parametrize("k", [2.5, "2", True])
    def test_non_integer(self, triplet_tree, k):
        with pytest.raises(InvalidClusterCountError):
            cut_tree(triplet_tree, k)

    def test_numpy_integer_accepted(self, triplet_tree):
        assert cut_tree(triplet_tree, np.int64(2)).tolist() == [1, 1, 1, 2, 2, 2]
