"""
Synthetic lipidomics panel for demonstrating and testing the QC workflow.

Two balanced classes start from the same standard-normal profile; ClassA is
shifted up on Lipid1-2 and ClassB on Lipid5-6. A handful of random samples get
extra noise so that some of them land in the wrong cluster.
"""
import logging
from pathlib import Path
from typing import Tuple, Union

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


def make_sample_lipidomics(n_samples: int = 100, n_features: int = 8, n_errors: int = 6,
                           shift: float = 2.0, noise_sd: float = 2.0,
                           seed: int = 123) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Build a lipid profile table and the matching sample metadata.

    Returns:
        (lipid_profiles, sample_metadata): features named Lipid1..LipidN, and a
        frame with SampleID / SampleType columns in the same row order.
    """
    if n_features < 6:
        raise ValueError("n_features must be at least 6 (Lipid5-6 carry the ClassB shift)")
    rng = np.random.default_rng(seed)

    per_class = n_samples // 2
    sample_ids = [f"S{i + 1:03d}" for i in range(n_samples)]
    sample_types = ["ClassA"] * per_class + ["ClassB"] * (n_samples - per_class)

    features = rng.normal(0.0, 1.0, size=(n_samples, n_features))
    features[:per_class, 0:2] += shift
    features[per_class:, 4:6] += shift

    error_indices = rng.choice(n_samples, size=min(n_errors, n_samples), replace=False)
    features[error_indices] += rng.normal(0.0, noise_sd, size=(len(error_indices), n_features))

    lipid_profiles = pd.DataFrame(features, columns=[f"Lipid{i + 1}" for i in range(n_features)])
    sample_metadata = pd.DataFrame({"SampleID": sample_ids, "SampleType": sample_types})
    return lipid_profiles, sample_metadata


def write_sample_files(output_dir: Union[str, Path], **kwargs) -> Tuple[Path, Path]:
    """Write lipid_profiles.csv and sample_metadata.csv into `output_dir`."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    lipid_profiles, sample_metadata = make_sample_lipidomics(**kwargs)

    profiles_path = output_dir / "lipid_profiles.csv"
    metadata_path = output_dir / "sample_metadata.csv"
    lipid_profiles.to_csv(profiles_path, index=False)
    sample_metadata.to_csv(metadata_path, index=False)
    logger.info(f"Created {profiles_path} and {metadata_path}")
    return profiles_path, metadata_path
