"""
Main Orchestration Script for the Mislabel QC Pipeline.

This script serves as the entry point to run the cluster/label agreement
analysis on a sample table and to manage saved configurations.

Usage:
  - python main.py analyze --features lipid_profiles.csv --metadata sample_metadata.csv
  - python main.py analyze --features data.csv --projection none --metric manhattan
  - python main.py create-sample-data --output-dir data
  - python main.py save-config --name strict_run --description "permutation solver"
  - python main.py list-configs
"""
import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError

from mislabel_qc.config.config_manager import ConfigManager
from mislabel_qc.config.pipeline_config import SUPPORTED_METRICS, Config, config
from mislabel_qc.utils.custom_exceptions import DataValidationError, PipelineError
from mislabel_qc.utils.helpers import setup_logging

logger = logging.getLogger(__name__)


def setup_pipeline_config(config_path: Optional[str] = None, log_level: Optional[str] = None,
                          overrides: Optional[Dict[str, Any]] = None,
                          config_dir: str = "configs") -> Config:
    """
    Builds the run configuration: the module default, then a saved config,
    then command line overrides (nested sections given as dicts).
    """
    if config_path:
        base_config = ConfigManager(config_dir).apply_config(config, Path(config_path))
        logger.info(f"Loaded configuration from: {config_path}")
    else:
        base_config = config

    merged = base_config.model_dump()
    merged["run_timestamp"] = datetime.now().strftime("%Y%m%d_%H%M%S")
    if log_level:
        merged["log_level"] = log_level
    for key, value in (overrides or {}).items():
        if isinstance(value, dict):
            merged[key].update(value)
        else:
            merged[key] = value
    updated_config = Config.model_validate(merged)

    setup_logging(updated_config)
    return updated_config


def _analysis_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    clustering: Dict[str, Any] = {}
    projection: Dict[str, Any] = {}
    plots: Dict[str, Any] = {}

    if args.metric:
        clustering["distance_metric"] = args.metric
    if args.projection:
        projection["method"] = args.projection
    if args.n_neighbors is not None:
        projection["n_neighbors"] = args.n_neighbors
    if args.format:
        plots["file_format"] = args.format
    if args.label_points:
        plots["label_points"] = True
    if args.output_dir:
        overrides["output_dir"] = args.output_dir
    if args.prefix:
        overrides["file_prefix"] = args.prefix
    if args.id_column:
        overrides["sample_id_column"] = args.id_column
    if args.class_column:
        overrides["class_column"] = args.class_column

    for key, section in (("clustering", clustering), ("projection", projection), ("plots", plots)):
        if section:
            overrides[key] = section
    return overrides


def run_analysis(args: argparse.Namespace) -> Dict[str, Any]:
    """Loads the input tables, runs mislabel detection and writes the artifacts."""
    from mislabel_qc.analysis.mislabel_detector import MislabelDetector

    cfg = setup_pipeline_config(args.config, args.log_level, _analysis_overrides(args),
                                config_dir=args.config_dir)
    logger.info(f"Starting analysis run {cfg.run_timestamp}")

    detector = MislabelDetector(cfg)
    results = detector.load_and_detect(
        args.features,
        args.metadata,
        n_clusters=args.n_clusters,
        save_results=True,
        include_plots=not args.no_plots,
    )

    report = results["analysis"].report
    print("\n--- CLUSTER / LABEL AGREEMENT ---")
    print(f"Samples:            {report.n_samples}")
    print(f"Clusters:           {results['analysis'].n_clusters}")
    print(f"Misclassified:      {report.n_misclassified}")
    print(f"Misclassification:  {report.rate_percent}%")
    if report.n_misclassified:
        print(report.mismatches.to_string(index=False))
    print("---------------------------------")
    for name, path in results["artifacts"].items():
        print(f"{name:>22}: {path}")
    return results


def create_sample_data(output_dir: str):
    """Writes the demo lipid profile and metadata tables."""
    from mislabel_qc.data_management.sample_data import write_sample_files

    profiles_path, metadata_path = write_sample_files(output_dir)
    print(f"Sample data written to: {profiles_path} and {metadata_path}")


def save_current_config(cfg: Config, name: str, description: str = "", config_dir: str = "configs"):
    """Save the current configuration to a file."""
    config_path = ConfigManager(config_dir).save_config(cfg, name, description)
    print(f"Configuration saved to: {config_path}")
    logger.info(f"Configuration '{name}' saved successfully")


def list_saved_configs(config_dir: str = "configs"):
    """List all saved configurations."""
    configs = ConfigManager(config_dir).list_configs()
    if not configs:
        print("No saved configurations found.")
        return

    print("\n--- SAVED CONFIGURATIONS ---")
    for i, config_meta in enumerate(configs, 1):
        print(f"{i}. {config_meta.get('name', 'Unnamed')}")
        print(f"   Description: {config_meta.get('description', 'No description')}")
        print(f"   Created: {config_meta.get('created_at', 'Unknown')}")
        print(f"   File: {config_meta.get('file_path', 'Unknown')}")
        print()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Mislabel QC: cluster/label agreement analysis")
    subparsers = parser.add_subparsers(dest="stage", required=True, help="Pipeline stage to run")

    # Global options shared by all subcommands
    parent_parser = argparse.ArgumentParser(add_help=False)
    parent_parser.add_argument("--config", type=str, help="Path to saved configuration file (.yaml)")
    parent_parser.add_argument("--log-level", type=str, choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                               help="Logging level (overrides config)")
    parent_parser.add_argument("--config-dir", type=str, default="configs",
                               help="Directory holding saved configurations")

    parser_analyze = subparsers.add_parser("analyze", parents=[parent_parser],
                                           help="Cluster the samples and report disagreements with their classes.")
    parser_analyze.add_argument("--features", type=str, required=True, help="CSV of samples x features")
    parser_analyze.add_argument("--metadata", type=str, help="CSV with sample ids and classes")
    parser_analyze.add_argument("--id-column", type=str, help="Sample id column in the metadata (default: config)")
    parser_analyze.add_argument("--class-column", type=str, help="Class column in the metadata (default: config)")
    parser_analyze.add_argument("--n-clusters", type=int, help="Number of clusters (default: number of classes)")
    parser_analyze.add_argument("--metric", type=str, choices=SUPPORTED_METRICS, help="Distance metric")
    parser_analyze.add_argument("--projection", type=str, choices=["umap", "pca", "none"],
                                help="Projection applied before clustering")
    parser_analyze.add_argument("--n-neighbors", type=int, help="UMAP neighbourhood size")
    parser_analyze.add_argument("--output-dir", type=str, help="Directory for plots and tables")
    parser_analyze.add_argument("--prefix", type=str, help="File name prefix of the artifacts")
    parser_analyze.add_argument("--format", type=str, choices=["svg", "png"], help="Plot file format")
    parser_analyze.add_argument("--label-points", action="store_true", help="Annotate points with sample ids")
    parser_analyze.add_argument("--no-plots", action="store_true", help="Write tables only")

    parser_sample = subparsers.add_parser("create-sample-data", parents=[parent_parser],
                                          help="Write a synthetic lipidomics dataset.")
    parser_sample.add_argument("--output-dir", type=str, default="data", help="Target directory")

    parser_save_config = subparsers.add_parser("save-config", parents=[parent_parser],
                                               help="Save current configuration to file")
    parser_save_config.add_argument("--name", type=str, required=True, help="Name for the configuration")
    parser_save_config.add_argument("--description", type=str, default="", help="Description of the configuration")

    subparsers.add_parser("list-configs", parents=[parent_parser], help="List all saved configurations")
    return parser


def main(argv=None) -> int:
    """Main entry point for the Mislabel QC pipeline. Returns the exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        if args.stage == "analyze":
            run_analysis(args)
        elif args.stage == "create-sample-data":
            setup_pipeline_config(args.config, args.log_level, config_dir=args.config_dir)
            create_sample_data(args.output_dir)
        elif args.stage == "save-config":
            cfg = setup_pipeline_config(args.config, args.log_level, config_dir=args.config_dir)
            save_current_config(cfg, name=args.name, description=args.description, config_dir=args.config_dir)
        elif args.stage == "list-configs":
            list_saved_configs(config_dir=args.config_dir)
    except (DataValidationError, PipelineError, FileNotFoundError, ValidationError) as e:
        logger.error(f"Pipeline stopped due to a known error: {e}")
        return 1
    except Exception as e:
        logger.critical(f"An unexpected error occurred in pipeline stage '{args.stage}': {e}", exc_info=True)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
