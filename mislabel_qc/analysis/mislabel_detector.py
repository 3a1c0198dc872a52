"""
Mislabel Detection Module

Runs the full QC workflow for a labelled sample table: prepare the data,
project it (UMAP by default), cluster the projection with Ward.D2, align the
clusters with the prior classes and report the samples that disagree.
"""
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

import numpy as np
import pandas as pd

from mislabel_qc.analysis.cluster_analysis import ClusterAnalysisResult, RawFeatureMatrix, analyze
from mislabel_qc.config.pipeline_config import Config
from mislabel_qc.data_management.data_manager import DataManager, PreparedDataset, prepare_dataset
from mislabel_qc.features.projection import ProjectionFactory, ProjectionResult, Projector
from mislabel_qc.reporting.reporter import AnalysisReporter

logger = logging.getLogger(__name__)


class MislabelDetector:
    """
    Detects potentially mislabeled samples by comparing an unsupervised
    clustering of the samples with their prior class labels.

    The projector and reporter are collaborators; both are built from the
    configuration when not supplied.
    """

    def __init__(self, config: Config, projector: Optional[Projector] = None,
                 reporter: Optional[AnalysisReporter] = None):
        """
        Initialize the mislabel detector.

        Args:
            config: Pipeline configuration
            projector: Projection strategy; from `config.projection` when None.
                Ignored when the configured method is 'none'.
            reporter: Artifact writer; an AnalysisReporter on `config` when None
        """
        self.config = config
        if projector is None and config.projection.method != "none":
            projector = ProjectionFactory.from_config(config.projection)
        self.projector = projector
        self.reporter = reporter or AnalysisReporter(config)
        self.results: Dict[str, Any] = {}

        method = self.projector.method_name if self.projector is not None else "none"
        logger.info(f"MislabelDetector initialized (projection: {method}, "
                    f"metric: {config.clustering.distance_metric})")

    def project(self, dataset: PreparedDataset) -> Union[ProjectionResult, RawFeatureMatrix]:
        """Projects the prepared features, or passes them through unchanged."""
        if self.projector is None:
            logger.info("Projection disabled; clustering the feature table directly.")
            return RawFeatureMatrix(features=dataset.features, labels=dataset.target,
                                    sample_ids=dataset.labels)
        return self.projector.project(dataset.features, target=dataset.target,
                                      sample_ids=dataset.labels)

    def detect_mislabels(self,
                         data: Union[pd.DataFrame, np.ndarray, PreparedDataset],
                         target: Optional[Sequence] = None,
                         labels: Optional[Sequence] = None,
                         n_clusters: Optional[int] = None,
                         save_results: bool = True,
                         include_plots: bool = True) -> Dict[str, Any]:
        """
        Main method to detect potentially mislabeled samples.

        Args:
            data: Sample table (numeric features plus optional Target/Label
                columns), a bare matrix, or an already prepared dataset
            target: Prior class per row; overrides the Target column
            labels: Sample label per row; overrides the Label column
            n_clusters: Number of clusters; defaults to the number of classes
            save_results: Whether to write plots and tables to the output directory
            include_plots: Whether saving includes the rendered figures

        Returns:
            Dictionary with the analysis result, the projection input and the
            paths of any saved artifacts
        """
        logger.info("Starting mislabel detection analysis...")

        if isinstance(data, PreparedDataset):
            dataset = data
        else:
            dataset = prepare_dataset(data, target=target, labels=labels,
                                      target_column=self.config.target_column,
                                      label_column=self.config.label_column)
        logger.info(f"Prepared {len(dataset)} samples with {dataset.features.shape[1]} features")

        projected = self.project(dataset)
        result = analyze(projected, n_clusters=n_clusters, config=self.config)

        self._log_summary(result)

        artifacts: Dict[str, Path] = {}
        if save_results:
            artifacts = self.reporter.save_all(result, include_plots=include_plots)

        self.results = {
            "analysis": result,
            "input": projected,
            "artifacts": artifacts,
            "summary": result.summary(),
        }
        return self.results

    def load_and_detect(self, features_path: Union[str, Path],
                        metadata_path: Optional[Union[str, Path]] = None,
                        **kwargs) -> Dict[str, Any]:
        """Loads a feature table (and metadata) from CSV and runs `detect_mislabels`."""
        dataset = DataManager(self.config).load_dataset(features_path, metadata_path)
        return self.detect_mislabels(dataset, **kwargs)

    def _log_summary(self, result: ClusterAnalysisResult):
        report = result.report
        logger.info("=" * 60)
        logger.info("MISLABEL DETECTION SUMMARY")
        logger.info("=" * 60)
        logger.info(f"Samples analysed: {report.n_samples}")
        logger.info(f"Clusters: {result.n_clusters}")
        logger.info(f"Misclassified samples: {report.n_misclassified} ({report.rate_percent}%)")
        if report.n_misclassified:
            for _, row in report.mismatches.head(10).iterrows():
                logger.info(f"  {row['sample_id']}: expected {row['expected_class']}, "
                            f"assigned {row['assigned_cluster']}")
            if report.n_misclassified > 10:
                logger.info(f"  ... and {report.n_misclassified - 10} more")
