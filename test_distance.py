"""
Test cases for the distance engine
"""
import numpy as np
import pandas as pd
import pytest
from scipy.spatial.distance import cdist

from mislabel_qc.clustering.distance import compute_distance_matrix, resolve_metric
from mislabel_qc.utils.custom_exceptions import InvalidInputError
from test_utils import ClusterDataGenerator


class TestDistanceMatrix:
    """Shape, symmetry and metric semantics"""

    @pytest.fixture
    def points(self):
        return ClusterDataGenerator.random_points(n=12, n_features=4, seed=3)

    def test_euclidean_matches_scipy(self, points):
        dist = compute_distance_matrix(points)
        assert dist.shape == (12, 12)
        np.testing.assert_allclose(dist, cdist(points, points))

    def test_symmetric_with_zero_diagonal(self, points):
        for metric in ("euclidean", "manhattan", "maximum", "canberra", "minkowski"):
            dist = compute_distance_matrix(points, metric=metric, p=3)
            assert np.array_equal(dist, dist.T)
            assert np.all(np.diag(dist) == 0.0)
            assert np.all(dist >= 0.0)

    @pytest.mark.parametrize("r_name,scipy_name", [
        ("manhattan", "cityblock"),
        ("maximum", "chebyshev"),
    ])
    def test_r_metric_names(self, points, r_name, scipy_name):
        np.testing.assert_allclose(
            compute_distance_matrix(points, metric=r_name),
            cdist(points, points, metric=scipy_name),
        )

    def test_minkowski_power(self, points):
        np.testing.assert_allclose(
            compute_distance_matrix(points, metric="minkowski", p=3),
            cdist(points, points, metric="minkowski", p=3),
        )

    def test_minkowski_rejects_non_positive_power(self, points):
        with pytest.raises(InvalidInputError):
            compute_distance_matrix(points, metric="minkowski", p=0)

    def test_canberra_drops_zero_terms(self):
        X = np.array([[0.0, 1.0, 2.0], [0.0, 3.0, 2.0]])
        dist = compute_distance_matrix(X, metric="canberra")
        # Only two of three terms are defined: (2/4 + 0) * 3/2
        assert dist[0, 1] == pytest.approx(0.75)

    def test_binary_is_jaccard_on_nonzero(self):
        X = np.array([[1.0, 0.0, 2.0, 0.0], [3.0, 5.0, 0.0, 0.0]])
        dist = compute_distance_matrix(X, metric="binary")
        # Non-zero sets {0, 2} and {0, 1}: union 3, shared 1
        assert dist[0, 1] == pytest.approx(2.0 / 3.0)

    def test_dataframe_input(self, points):
        df = pd.DataFrame(points, columns=list("abcd"))
        np.testing.assert_allclose(compute_distance_matrix(df), cdist(points, points))

    def test_parallel_matches_serial(self):
        X = ClusterDataGenerator.random_points(n=40, n_features=5, seed=11)
        serial = compute_distance_matrix(X, metric="manhattan", n_jobs=1)
        parallel = compute_distance_matrix(X, metric="manhattan", n_jobs=2)
        np.testing.assert_allclose(parallel, serial)


class TestDistanceValidation:
    """Invalid input is rejected before any distance is computed"""

    def test_unknown_metric(self):
        with pytest.raises(InvalidInputError, match="Unknown distance metric"):
            resolve_metric("cosine-ish")

    def test_non_finite_row_is_reported(self):
        X = np.array([[0.0, 1.0], [np.nan, 1.0], [2.0, 2.0]])
        with pytest.raises(InvalidInputError, match="rows: 1"):
            compute_distance_matrix(X)

    def test_too_few_rows(self):
        with pytest.raises(InvalidInputError):
            compute_distance_matrix(np.array([[1.0, 2.0]]))

    def test_non_numeric_columns(self):
        df = pd.DataFrame({"a": [1.0, 2.0, 3.0], "b": ["x", "y", "z"]})
        with pytest.raises(InvalidInputError, match="Non-numeric"):
            compute_distance_matrix(df)

    def test_error_carries_stage(self):
        with pytest.raises(InvalidInputError) as excinfo:
            compute_distance_matrix(np.zeros(5))
        assert excinfo.value.stage == "distance"
        assert str(excinfo.value).startswith("[distance]")
