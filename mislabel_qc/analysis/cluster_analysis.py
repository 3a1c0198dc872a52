"""
Cluster / label agreement analysis.

Single entry point of the clustering engine:

    distances -> Ward tree -> flat clusters -> label alignment -> misclassification report

Every stage is a pure function; `analyze` only resolves the input once and
threads the outputs through.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from mislabel_qc.analysis.misclassification import (
    MisclassificationReport,
    build_misclassification_report,
    default_sample_ids,
)
from mislabel_qc.clustering.alignment import AlignmentResult, align_clusters_to_labels
from mislabel_qc.clustering.distance import compute_distance_matrix
from mislabel_qc.clustering.linkage import MergeTree, ward_linkage
from mislabel_qc.clustering.tree_cut import cut_tree
from mislabel_qc.config.pipeline_config import Config, config as default_config
from mislabel_qc.features.projection import ProjectionResult
from mislabel_qc.utils.custom_exceptions import InvalidInputError
from mislabel_qc.utils.helpers import as_feature_matrix, check_length

logger = logging.getLogger(__name__)

STAGE = "input"


@dataclass(frozen=True)
class RawFeatureMatrix:
    """Feature matrix supplied directly, without a projection step."""
    features: Any
    labels: Optional[Sequence] = None
    sample_ids: Optional[Sequence] = None


AnalysisInput = Union[RawFeatureMatrix, ProjectionResult]


@dataclass
class ClusterAnalysisResult:
    """Everything computed by one `analyze` call."""
    coordinates: pd.DataFrame
    labels: np.ndarray
    sample_ids: np.ndarray
    distance_matrix: np.ndarray
    tree: MergeTree
    n_clusters: int
    clusters: np.ndarray            # flat assignment before alignment (1..k)
    aligned_clusters: np.ndarray    # in the label space
    alignment: AlignmentResult
    report: MisclassificationReport
    metric: str = "euclidean"

    @property
    def misclassification_rate(self) -> float:
        return self.report.rate

    @property
    def misclassified_samples(self) -> pd.DataFrame:
        return self.report.mismatches

    def to_frame(self) -> pd.DataFrame:
        """Per-sample table: coordinates, Target, Label, Cluster, OriginalCluster, Misclassified."""
        frame = self.coordinates.reset_index(drop=True).copy()
        frame["Target"] = self.labels
        frame["Label"] = self.sample_ids
        frame["Cluster"] = self.aligned_clusters
        frame["OriginalCluster"] = self.clusters
        frame["Misclassified"] = ~self.report.agreement
        return frame

    def summary(self) -> Dict[str, Any]:
        return {
            "n_samples": int(len(self.labels)),
            "n_clusters": int(self.n_clusters),
            "metric": self.metric,
            "linkage_method": self.tree.method,
            "alignment_solver": self.alignment.solver,
            "alignment_accuracy": float(self.alignment.accuracy),
            "clusters_reduced": bool(self.alignment.reduced),
            "cluster_mapping": {str(k): str(v) for k, v in self.alignment.mapping.items()},
            **self.report.to_dict(),
        }


def resolve_input(data, labels: Optional[Sequence] = None,
                  sample_ids: Optional[Sequence] = None
                  ) -> Tuple[pd.DataFrame, Optional[Sequence], Optional[Sequence]]:
    """
    Resolve the accepted input variants to (coordinates, labels, sample_ids).

    Explicit `labels` / `sample_ids` take precedence over the ones carried by
    the input object.
    """
    if isinstance(data, ProjectionResult):
        coords = data.coordinates
        carried_labels, carried_ids = data.target, data.sample_ids
    elif isinstance(data, RawFeatureMatrix):
        coords = data.features
        carried_labels, carried_ids = data.labels, data.sample_ids
    elif isinstance(data, (np.ndarray, pd.DataFrame)):
        coords = data
        carried_labels, carried_ids = None, None
    else:
        raise InvalidInputError(
            f"Unsupported input type {type(data).__name__}; expected RawFeatureMatrix, "
            f"ProjectionResult, numpy array or DataFrame",
            stage=STAGE,
        )

    if not isinstance(coords, pd.DataFrame):
        try:
            matrix = np.asarray(coords, dtype=float)
        except (TypeError, ValueError) as e:
            raise InvalidInputError(f"Feature data is not numeric: {e}", stage=STAGE) from e
        if matrix.ndim != 2:
            raise InvalidInputError(f"Feature data must be 2-D, got {matrix.ndim}-D", stage=STAGE)
        coords = pd.DataFrame(matrix, columns=[f"Dim{i + 1}" for i in range(matrix.shape[1])])

    return (
        coords,
        labels if labels is not None else carried_labels,
        sample_ids if sample_ids is not None else carried_ids,
    )


def default_cluster_count(labels: Sequence, max_clusters: int) -> int:
    """min(distinct labels, max_clusters), never below 2."""
    n_distinct = len(pd.unique(pd.Series(list(labels), dtype=object)))
    return max(2, min(n_distinct, max_clusters))


def analyze(data: Union[AnalysisInput, np.ndarray, pd.DataFrame],
            labels: Optional[Sequence] = None,
            sample_ids: Optional[Sequence] = None,
            n_clusters: Optional[int] = None,
            metric: Optional[str] = None,
            max_clusters: Optional[int] = None,
            config: Optional[Config] = None) -> ClusterAnalysisResult:
    """
    Cluster `data` with Ward.D2 and measure agreement with prior labels.

    Args:
        data: RawFeatureMatrix, ProjectionResult, or a bare matrix/DataFrame.
        labels: Prior class per row. A single synthetic class is used when
            neither this nor the input carries labels.
        sample_ids: Identifier per row (row positions when absent).
        n_clusters: Number of flat clusters; defaults to the number of distinct
            labels capped at `max_clusters`, never below 2.
        metric: Distance metric name (config default when None).
        max_clusters: Cluster ceiling of the aligner (config default when None).
        config: Pipeline configuration; the module default when None.

    Returns:
        ClusterAnalysisResult.
    """
    cfg = config or default_config
    clustering_cfg = cfg.clustering
    metric = metric or clustering_cfg.distance_metric
    max_clusters = max_clusters if max_clusters is not None else clustering_cfg.max_clusters

    coords, labels, sample_ids = resolve_input(data, labels, sample_ids)
    values = as_feature_matrix(coords, stage=STAGE)
    n = values.shape[0]

    if labels is None:
        logger.warning("No target labels provided; using a single class for all samples. "
                       "Alignment will not be meaningful.")
        labels = np.ones(n, dtype=int)
    check_length(labels, n, "labels", STAGE)
    labels = np.asarray(list(labels), dtype=object)

    if sample_ids is None:
        sample_ids = default_sample_ids(n)
    check_length(sample_ids, n, "sample_ids", STAGE)
    sample_ids = np.asarray(list(sample_ids), dtype=object)

    if n_clusters is None:
        n_clusters = default_cluster_count(labels, max_clusters)
    logger.info(f"Clustering {n} samples into {n_clusters} clusters ({metric}, {clustering_cfg.linkage_method})")

    distances = compute_distance_matrix(values, metric=metric, p=clustering_cfg.minkowski_p,
                                        n_jobs=clustering_cfg.n_jobs)
    tree = ward_linkage(distances, method=clustering_cfg.linkage_method)
    clusters = cut_tree(tree, n_clusters)

    alignment = align_clusters_to_labels(
        labels, clusters,
        max_clusters=max_clusters,
        max_label_categories=clustering_cfg.max_label_categories,
        solver=clustering_cfg.alignment_solver,
        permutation_ceiling=clustering_cfg.permutation_ceiling,
    )
    report = build_misclassification_report(alignment.aligned, labels, sample_ids)

    return ClusterAnalysisResult(
        coordinates=coords.reset_index(drop=True),
        labels=labels,
        sample_ids=sample_ids,
        distance_matrix=distances,
        tree=tree,
        n_clusters=n_clusters,
        clusters=clusters,
        aligned_clusters=alignment.aligned,
        alignment=alignment,
        report=report,
        metric=metric,
    )
