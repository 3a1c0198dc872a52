"""
Projection Module

Low-dimensional projections that feed the clustering engine. Strategies are
interchangeable through configuration, the same way the training pipeline
swaps dimensionality reducers.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.base import BaseEstimator, TransformerMixin
from sklearn.decomposition import PCA
from sklearn.preprocessing import StandardScaler

from mislabel_qc.utils.custom_exceptions import InvalidInputError
from mislabel_qc.utils.helpers import as_feature_matrix, check_length

logger = logging.getLogger(__name__)

STAGE = "projection"


@dataclass
class ProjectionResult:
    """
    Coordinates produced by a projector, row-aligned with the target and
    sample id vectors that survived de-duplication.
    """
    coordinates: pd.DataFrame           # columns Dim1..DimN
    target: Optional[np.ndarray] = None
    sample_ids: Optional[np.ndarray] = None
    kept_rows: Optional[np.ndarray] = None  # positions in the original input
    method: str = "unknown"

    def __post_init__(self):
        if self.coordinates.shape[1] < 2:
            raise InvalidInputError("The projection data must have at least two columns.", stage=STAGE)
        n = len(self.coordinates)
        if self.target is not None:
            check_length(self.target, n, "target", STAGE)
        if self.sample_ids is not None:
            check_length(self.sample_ids, n, "sample_ids", STAGE)


class Projector(ABC, BaseEstimator, TransformerMixin):
    """Abstract base class for all projection strategies."""

    method_name = "base"

    def __init__(self, n_components: int = 2, scale: bool = True,
                 drop_duplicates: bool = True):
        self.n_components = n_components
        self.scale = scale
        self.drop_duplicates = drop_duplicates

    @abstractmethod
    def fit(self, X, y=None):
        """Fit the projection model."""
        pass

    @abstractmethod
    def transform(self, X):
        """Project data to the low-dimensional space."""
        pass

    def fit_transform(self, X, y=None):
        """Fit and transform in one step."""
        return self.fit(X, y).transform(X)

    def project(self, features, target: Optional[Sequence] = None,
                sample_ids: Optional[Sequence] = None) -> ProjectionResult:
        """
        Remove duplicate rows, optionally standardise, and project.

        Args:
            features: Numeric feature table, one row per sample.
            target: Optional class per row; filtered alongside duplicates.
            sample_ids: Optional identifier per row; filtered alongside duplicates.

        Returns:
            ProjectionResult with coordinates named Dim1..DimN.
        """
        values = as_feature_matrix(features, stage=STAGE)
        n = values.shape[0]
        if target is not None:
            check_length(target, n, "target", STAGE)
        if sample_ids is not None:
            check_length(sample_ids, n, "sample_ids", STAGE)

        keep = np.ones(n, dtype=bool)
        if self.drop_duplicates:
            keep = ~pd.DataFrame(values).duplicated().to_numpy()
            if not keep.all():
                logger.info(f"Removed {int((~keep).sum())} duplicate rows before projection")
        values = values[keep]
        if values.shape[0] < 2:
            raise InvalidInputError("Fewer than 2 distinct rows remain after de-duplication", stage=STAGE)

        if self.scale:
            values = StandardScaler().fit_transform(values)

        logger.info(f"Applying {self.method_name} projection to {values.shape[0]} x {values.shape[1]} data...")
        embedding = np.asarray(self.fit_transform(values))
        coords = pd.DataFrame(
            embedding,
            columns=[f"Dim{i + 1}" for i in range(embedding.shape[1])],
        )

        return ProjectionResult(
            coordinates=coords,
            target=None if target is None else np.asarray(list(target), dtype=object)[keep],
            sample_ids=None if sample_ids is None else np.asarray(list(sample_ids), dtype=object)[keep],
            kept_rows=np.flatnonzero(keep),
            method=self.method_name,
        )


class UMAPProjector(Projector):
    """Uniform Manifold Approximation and Projection (umap-learn)."""

    method_name = "umap"

    def __init__(self, n_components: int = 2, n_neighbors: int = 15, min_dist: float = 0.1,
                 metric: str = "euclidean", random_state: Optional[int] = 42,
                 scale: bool = True, drop_duplicates: bool = True, **kwargs):
        """
        Initialize UMAP projector.

        Args:
            n_components: Output dimensions (at least 2)
            n_neighbors: Size of the local neighbourhood
            min_dist: Minimum distance between embedded points
            metric: Input-space metric used by UMAP
            random_state: Seed for reproducible layouts
            scale: Standardise features before projecting
            drop_duplicates: Remove duplicate rows before projecting
            **kwargs: Additional arguments passed to umap.UMAP
        """
        super().__init__(n_components=n_components, scale=scale, drop_duplicates=drop_duplicates)
        self.n_neighbors = n_neighbors
        self.min_dist = min_dist
        self.metric = metric
        self.random_state = random_state
        self.kwargs = kwargs
        self.umap_ = None

    def fit(self, X, y=None):
        """Fit UMAP model."""
        import umap

        n_neighbors = self.n_neighbors
        if n_neighbors >= X.shape[0]:
            n_neighbors = max(2, X.shape[0] - 1)
            logger.warning(f"n_neighbors={self.n_neighbors} too large for {X.shape[0]} samples, using {n_neighbors}")

        self.umap_ = umap.UMAP(
            n_components=self.n_components,
            n_neighbors=n_neighbors,
            min_dist=self.min_dist,
            metric=self.metric,
            random_state=self.random_state,
            **self.kwargs,
        )
        self.umap_.fit(X)
        logger.info(f"UMAP fitted: {X.shape[1]} → {self.n_components} components (n_neighbors={n_neighbors})")
        return self

    def transform(self, X):
        """Transform data using fitted UMAP."""
        if self.umap_ is None:
            raise ValueError("UMAP must be fitted before transform")
        return self.umap_.transform(X)

    def fit_transform(self, X, y=None):
        # The training embedding, not a re-projection of the training data
        self.fit(X, y)
        return self.umap_.embedding_


class PCAProjector(Projector):
    """Principal Component Analysis projection."""

    method_name = "pca"

    def __init__(self, n_components: int = 2, random_state: Optional[int] = 42,
                 scale: bool = True, drop_duplicates: bool = True, **kwargs):
        super().__init__(n_components=n_components, scale=scale, drop_duplicates=drop_duplicates)
        self.random_state = random_state
        self.kwargs = kwargs
        self.pca_ = None

    def fit(self, X, y=None):
        """Fit PCA model."""
        n_components = min(self.n_components, X.shape[0], X.shape[1])
        if n_components < 2:
            raise InvalidInputError(
                f"PCA needs at least 2 samples and 2 features, got {X.shape}", stage=STAGE
            )
        self.pca_ = PCA(n_components=n_components, random_state=self.random_state, **self.kwargs)
        self.pca_.fit(X)
        variance_retained = np.sum(self.pca_.explained_variance_ratio_) * 100
        logger.info(f"PCA fitted: {X.shape[1]} → {n_components} components "
                    f"(retained {variance_retained:.1f}% variance)")
        return self

    def transform(self, X):
        """Transform data using fitted PCA."""
        if self.pca_ is None:
            raise ValueError("PCA must be fitted before transform")
        return self.pca_.transform(X)


class ProjectionFactory:
    """Factory for creating projector instances."""

    _projectors = {
        'umap': UMAPProjector,
        'pca': PCAProjector,
    }

    @classmethod
    def create(cls, method: str, params: Optional[Dict[str, Any]] = None) -> Projector:
        """
        Create a projector instance.

        Args:
            method: Name of the projection method
            params: Parameters for the projector

        Returns:
            Projector instance
        """
        if method not in cls._projectors:
            raise ValueError(f"Unknown projection method: {method}. "
                             f"Available methods: {list(cls._projectors.keys())}")
        return cls._projectors[method](**(params or {}))

    @classmethod
    def from_config(cls, projection_config) -> Projector:
        """Build the projector described by a ProjectionConfig."""
        params = {
            "n_components": projection_config.n_components,
            "random_state": projection_config.random_state,
            "scale": projection_config.scale,
            "drop_duplicates": projection_config.drop_duplicates,
        }
        if projection_config.method == "umap":
            params.update(
                n_neighbors=projection_config.n_neighbors,
                min_dist=projection_config.min_dist,
                metric=projection_config.metric,
            )
        return cls.create(projection_config.method, params)

    @classmethod
    def register(cls, name: str, projector_class):
        """Register a new projector type."""
        if not issubclass(projector_class, Projector):
            raise ValueError("Projector class must inherit from Projector")
        cls._projectors[name] = projector_class

    @classmethod
    def get_available_methods(cls) -> list:
        """Get list of available projection methods."""
        return list(cls._projectors.keys())
