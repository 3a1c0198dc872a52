"""
Integration tests for the mislabel detection workflow and the CLI
"""
import logging

import matplotlib
matplotlib.use("Agg")
import pandas as pd
import pytest

import main
from mislabel_qc.analysis.cluster_analysis import RawFeatureMatrix
from mislabel_qc.analysis.mislabel_detector import MislabelDetector
from mislabel_qc.config.pipeline_config import Config, PlotConfig, ProjectionConfig
from mislabel_qc.data_management.sample_data import make_sample_lipidomics, write_sample_files
from mislabel_qc.features.projection import PCAProjector, ProjectionResult
from test_utils import ClusterDataGenerator


@pytest.fixture
def config(tmp_path):
    return Config(
        output_dir=tmp_path / "results",
        log_dir=tmp_path / "logs",
        run_timestamp="20240101_000000",
        projection=ProjectionConfig(method="pca"),
        plots=PlotConfig(file_format="png", dpi=50),
    )


class TestMislabelDetector:

    def test_pca_workflow_on_sample_data(self, config):
        profiles, metadata = make_sample_lipidomics(n_samples=40, n_errors=0)
        detector = MislabelDetector(config)
        results = detector.detect_mislabels(profiles, target=metadata["SampleType"],
                                            labels=metadata["SampleID"], save_results=False)

        assert isinstance(results["input"], ProjectionResult)
        analysis = results["analysis"]
        assert analysis.n_clusters == 2
        assert set(analysis.aligned_clusters.tolist()) <= {"ClassA", "ClassB"}
        assert results["artifacts"] == {}
        assert results["summary"]["n_samples"] == 40

    def test_projection_disabled(self, config):
        cfg = config.model_copy(update={"projection": ProjectionConfig(method="none")})
        X, y = ClusterDataGenerator.blobs((6, 6), seed=3)
        df = ClusterDataGenerator.feature_table(X, target=y)

        results = MislabelDetector(cfg).detect_mislabels(df, save_results=False)
        assert isinstance(results["input"], RawFeatureMatrix)
        assert results["analysis"].report.rate == 0.0

    def test_injected_projector_and_saved_artifacts(self, config):
        X, y = ClusterDataGenerator.blobs((10, 10), n_features=4, seed=8)
        labels = ClusterDataGenerator.swap_labels(y, [2], [2])
        df = ClusterDataGenerator.feature_table(X, target=labels,
                                                labels=[f"S{i}" for i in range(20)])

        detector = MislabelDetector(config, projector=PCAProjector(n_components=2))
        results = detector.detect_mislabels(df)

        assert results["analysis"].misclassified_samples["sample_id"].tolist() == ["S2"]
        assert results["artifacts"]["combined"].exists()
        assert results["artifacts"]["misclassified_samples"].exists()

    def test_load_and_detect(self, config, tmp_path):
        profiles_path, metadata_path = write_sample_files(tmp_path / "data", n_samples=30)
        results = MislabelDetector(config).load_and_detect(
            profiles_path, metadata_path, save_results=True, include_plots=False
        )
        assert results["analysis"].sample_ids[0] == "S001"
        assert "voronoi" not in results["artifacts"]
        assert results["artifacts"]["summary"].exists()

    def test_raw_single_feature_saves_results(self, config):
        cfg = config.model_copy(update={"projection": ProjectionConfig(method="none")})
        df = pd.DataFrame({"V1": [0.0, 0.1, 0.2, 10.0, 10.1, 10.2], "Target": [1, 1, 1, 2, 2, 2]})

        results = MislabelDetector(cfg).detect_mislabels(df, save_results=True)
        artifacts = results["artifacts"]
        assert results["analysis"].report.rate == 0.0
        assert artifacts["heatmap"].exists()
        assert artifacts["dendrogram"].exists()
        assert "voronoi" not in artifacts


class TestCommandLine:

    @pytest.fixture(autouse=True)
    def restore_logging(self):
        """setup_logging replaces the root handlers; put the originals back"""
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        for handler in root.handlers:
            if handler not in handlers:
                handler.close()
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_create_sample_data_and_analyze(self, tmp_path, monkeypatch):
        monkeypatch.setattr(main, "config", Config(log_dir=tmp_path / "logs"))
        data_dir = tmp_path / "data"
        assert main.main(["create-sample-data", "--output-dir", str(data_dir)]) == 0
        assert (data_dir / "lipid_profiles.csv").exists()

        out_dir = tmp_path / "out"
        code = main.main([
            "analyze",
            "--features", str(data_dir / "lipid_profiles.csv"),
            "--metadata", str(data_dir / "sample_metadata.csv"),
            "--projection", "pca",
            "--output-dir", str(out_dir),
            "--prefix", "cli",
            "--no-plots",
        ])
        assert code == 0
        summary = (out_dir / "cli_summary.json")
        assert summary.exists()

    def test_known_error_gives_non_zero_exit(self, tmp_path, monkeypatch):
        monkeypatch.setattr(main, "config", Config(log_dir=tmp_path / "logs"))
        code = main.main(["analyze", "--features", str(tmp_path / "missing.csv"),
                          "--projection", "none", "--output-dir", str(tmp_path / "out")])
        assert code == 1

    def test_invalid_cluster_count(self, tmp_path, monkeypatch):
        monkeypatch.setattr(main, "config", Config(log_dir=tmp_path / "logs"))
        features = tmp_path / "f.csv"
        pd.DataFrame({"a": [0.0, 1.0, 5.0], "b": [0.0, 1.0, 5.0]}).to_csv(features, index=False)
        code = main.main(["analyze", "--features", str(features), "--projection", "none",
                          "--n-clusters", "5", "--output-dir", str(tmp_path / "out"), "--no-plots"])
        assert code == 1

    def test_save_and_list_configs(self, tmp_path, monkeypatch, capsys):
        monkeypatch.setattr(main, "config", Config(log_dir=tmp_path / "logs"))
        config_dir = str(tmp_path / "configs")
        assert main.main(["save-config", "--name", "demo", "--description", "demo run",
                          "--config-dir", config_dir]) == 0
        assert main.main(["list-configs", "--config-dir", config_dir]) == 0
        out = capsys.readouterr().out
        assert "demo run" in out

    def test_config_dir_is_respected(self, tmp_path, monkeypatch):
        monkeypatch.setattr(main, "config", Config(log_dir=tmp_path / "logs"))
        work_dir = tmp_path / "work"
        work_dir.mkdir()
        monkeypatch.chdir(work_dir)
        saved = tmp_path / "saved.yaml"
        saved.write_text("file_prefix: from_yaml\n")
        config_dir = tmp_path / "configs"

        assert main.main(["save-config", "--name", "reuse", "--config", str(saved),
                          "--config-dir", str(config_dir)]) == 0
        features = tmp_path / "f.csv"
        pd.DataFrame({"a": [0.0, 0.1, 5.0, 5.1], "b": [0.0, 0.1, 5.0, 5.1]}).to_csv(features, index=False)
        assert main.main(["analyze", "--features", str(features), "--projection", "none",
                          "--config", str(saved), "--config-dir", str(config_dir),
                          "--output-dir", str(tmp_path / "out"), "--no-plots"]) == 0

        assert not (work_dir / "configs").exists()
        assert (tmp_path / "out" / "from_yaml_summary.json").exists()
