"""
Reporting Module

Handles the visualization and saving of cluster/label QC results.
"""
import json
import logging
from pathlib import Path
from typing import Dict, Optional

import matplotlib.pyplot as plt

from mislabel_qc.analysis.cluster_analysis import ClusterAnalysisResult
from mislabel_qc.config.pipeline_config import Config
from mislabel_qc.reporting.plots import (
    plot_combined,
    plot_dendrogram,
    plot_misclassification_heatmap,
    plot_projection_with_voronoi,
)

logger = logging.getLogger(__name__)


class AnalysisReporter:
    """Writes the figures and tables of a QC run into the output directory."""

    def __init__(self, config: Config):
        """
        Initializes the AnalysisReporter.

        Args:
            config: The pipeline configuration object.
        """
        self.config = config

    @property
    def output_dir(self) -> Path:
        return Path(self.config.output_dir)

    def _artifact_path(self, suffix: str, extension: str) -> Path:
        path = self.output_dir / f"{self.config.file_prefix}_{suffix}.{extension}"
        if path.exists():
            logger.warning(f"Overwriting existing file: {path}")
        return path

    def _save_figure(self, fig: plt.Figure, suffix: str, width: float, height: float) -> Path:
        plots = self.config.plots
        save_path = self._artifact_path(suffix, plots.file_format)
        fig.set_size_inches(width, height)
        fig.savefig(save_path, dpi=plots.dpi, bbox_inches='tight')
        plt.close(fig)
        logger.info(f"Plot saved to: {save_path}")
        return save_path

    def save_plots(self, result: ClusterAnalysisResult) -> Dict[str, Path]:
        """
        Renders and saves the Voronoi, heatmap, dendrogram and combined plots.
        The Voronoi and combined plots need two coordinate columns and are
        skipped, with a warning, for single-feature input.

        Returns:
            Mapping of plot name to saved path.
        """
        plots = self.config.plots
        coords = result.coordinates.iloc[:, :2].to_numpy()
        has_plane = coords.shape[1] >= 2
        saved = {}

        if has_plane:
            fig = plot_projection_with_voronoi(coords, result.labels, labels=result.sample_ids,
                                               label_points=plots.label_points)
            saved["voronoi"] = self._save_figure(fig, "voronoi", plots.width * 0.6, plots.height)
        else:
            logger.warning("Only one coordinate column; skipping the Voronoi and combined plots.")

        fig = plot_misclassification_heatmap(result.report, row_font_size=plots.heatmap_row_font_size)
        saved["heatmap"] = self._save_figure(fig, "heatmap", plots.width * 0.4, plots.height)

        fig = plot_dendrogram(result.tree, labels=result.sample_ids, n_clusters=result.n_clusters)
        saved["dendrogram"] = self._save_figure(fig, "dendrogram", plots.width, plots.height * 0.6)

        if has_plane:
            fig = plot_combined(coords, result.labels, result.report, labels=result.sample_ids,
                                label_points=plots.label_points,
                                row_font_size=plots.heatmap_row_font_size)
            saved["combined"] = self._save_figure(fig, "combined", plots.width, plots.height)
        return saved

    def save_misclassified_samples(self, result: ClusterAnalysisResult) -> Optional[Path]:
        """Saves the mismatch table as CSV; nothing is written when every sample agrees."""
        mismatches = result.misclassified_samples
        if mismatches.empty:
            logger.info("No misclassified samples; skipping CSV export.")
            return None
        save_path = self._artifact_path("misclassified_samples", "csv")
        mismatches.to_csv(save_path, index=False)
        logger.info(f"{len(mismatches)} misclassified samples saved to: {save_path}")
        return save_path

    def save_summary(self, result: ClusterAnalysisResult) -> Path:
        """Saves the run summary (rate, mapping, settings) as JSON."""
        summary = {
            "project_name": self.config.project_name,
            "run_timestamp": self.config.run_timestamp,
            **result.summary(),
        }
        save_path = self._artifact_path("summary", "json")
        with open(save_path, 'w', encoding='utf-8') as f:
            json.dump(summary, f, indent=2, default=str, ensure_ascii=False)
        logger.info(f"Analysis summary saved to: {save_path}")
        return save_path

    def save_config(self) -> Path:
        """
        Saves the pipeline configuration to a JSON file with timestamp.

        Returns:
            Path: The path where the config was saved.
        """
        config_dict = self.config.model_dump(mode="json")
        suffix = "config"
        if self.config.run_timestamp:
            suffix = f"config_{self.config.run_timestamp}"
        save_path = self._artifact_path(suffix, "json")

        with open(save_path, 'w', encoding='utf-8') as f:
            json.dump(config_dict, f, indent=2, default=str, ensure_ascii=False)

        logger.info(f"Pipeline configuration saved to: {save_path}")
        return save_path

    def save_all(self, result: ClusterAnalysisResult, include_plots: bool = True) -> Dict[str, Path]:
        """Writes every artifact of a run and returns their paths by name."""
        self.output_dir.mkdir(parents=True, exist_ok=True)
        saved: Dict[str, Path] = {}
        if include_plots:
            saved.update(self.save_plots(result))
        csv_path = self.save_misclassified_samples(result)
        if csv_path is not None:
            saved["misclassified_samples"] = csv_path
        saved["summary"] = self.save_summary(result)
        saved["config"] = self.save_config()
        return saved
