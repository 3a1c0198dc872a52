"""
Data Management Module: Handles loading and preparation of feature tables
and sample metadata for cluster/label QC.
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union

import numpy as np
import pandas as pd

from mislabel_qc.config.pipeline_config import Config
from mislabel_qc.utils.custom_exceptions import DataValidationError, InvalidInputError
from mislabel_qc.utils.helpers import check_length

logger = logging.getLogger(__name__)

STAGE = "prepare_dataset"


@dataclass
class PreparedDataset:
    """Numeric features plus row-aligned target classes and sample labels."""
    features: pd.DataFrame
    target: np.ndarray
    labels: np.ndarray

    def __len__(self) -> int:
        return len(self.features)


def prepare_dataset(frame: Union[pd.DataFrame, np.ndarray],
                    target: Optional[Sequence] = None,
                    labels: Optional[Sequence] = None,
                    target_column: str = "Target",
                    label_column: str = "Label") -> PreparedDataset:
    """
    Split an input table into features, target classes and sample labels.

    Target: the explicit vector, else the `target_column` column, else 1 for
    every row. Labels: the explicit vector, else the `label_column` column,
    else the row index.

    Raises:
        InvalidInputError: If no numeric feature column remains.
        DimensionMismatchError: If an explicit vector does not match the rows.
    """
    if isinstance(frame, np.ndarray):
        if frame.ndim != 2:
            raise InvalidInputError("Input must be a data frame or a 2-D matrix.", stage=STAGE)
        frame = pd.DataFrame(frame, columns=[f"V{i + 1}" for i in range(frame.shape[1])])
    elif not isinstance(frame, pd.DataFrame):
        raise InvalidInputError("Input must be a data frame or matrix.", stage=STAGE)

    n = len(frame)
    if target is not None:
        check_length(target, n, "target", STAGE)
        target_values = np.asarray(list(target), dtype=object)
    elif target_column in frame.columns:
        target_values = frame[target_column].to_numpy(dtype=object)
    else:
        logger.warning(f"'{target_column}' is missing, using a single class '1' for all samples.")
        target_values = np.ones(n, dtype=int).astype(object)

    if labels is not None:
        check_length(labels, n, "labels", STAGE)
        label_values = np.asarray(list(labels), dtype=object)
    elif label_column in frame.columns:
        logger.info(f"Taking '{label_column}' column as case labels.")
        label_values = frame[label_column].astype(str).to_numpy(dtype=object)
    else:
        logger.info("Taking row names as case labels.")
        label_values = frame.index.astype(str).to_numpy(dtype=object)

    features = frame.drop(columns=[c for c in (target_column, label_column) if c in frame.columns])
    if features.shape[1] < 1:
        raise InvalidInputError("Input data needs at least one feature column.", stage=STAGE)
    non_numeric = [c for c in features.columns if not pd.api.types.is_numeric_dtype(features[c])]
    if non_numeric:
        raise InvalidInputError(f"Non-numeric feature columns: {non_numeric}", stage=STAGE)

    return PreparedDataset(
        features=features.reset_index(drop=True),
        target=target_values,
        labels=label_values,
    )


class DataManager:
    """Loads feature tables and sample metadata from disk."""

    def __init__(self, config: Config):
        self.config = config

    def load_feature_table(self, path: Union[str, Path]) -> pd.DataFrame:
        """Load a samples x features CSV."""
        path = Path(path)
        logger.info(f"Loading feature table from: {path}")
        if not path.exists():
            raise FileNotFoundError(f"Feature table not found: {path}")
        df = pd.read_csv(path)
        df.columns = df.columns.str.strip()
        if df.empty:
            raise DataValidationError(f"Feature table is empty: {path}", stage=STAGE)
        logger.info(f"Loaded {df.shape[0]} samples x {df.shape[1]} columns")
        return df

    def load_metadata(self, path: Union[str, Path]) -> pd.DataFrame:
        """Load sample metadata holding the sample id and class columns."""
        path = Path(path)
        logger.info(f"Loading sample metadata from: {path}")
        if not path.exists():
            raise FileNotFoundError(f"Metadata file not found: {path}")
        df = pd.read_csv(path)
        df.columns = df.columns.str.strip()

        required_cols = {self.config.sample_id_column, self.config.class_column}
        if not required_cols.issubset(df.columns):
            raise DataValidationError(f"Metadata must contain columns: {required_cols}", stage=STAGE)
        return df

    def load_dataset(self, features_path: Union[str, Path],
                     metadata_path: Optional[Union[str, Path]] = None) -> PreparedDataset:
        """
        Load features and (optionally) metadata and prepare them for analysis.

        When the feature table carries the sample id column, metadata rows are
        matched by id; otherwise they are taken positionally.
        """
        features = self.load_feature_table(features_path)
        if metadata_path is None:
            return prepare_dataset(features, target_column=self.config.target_column,
                                   label_column=self.config.label_column)

        metadata = self.load_metadata(metadata_path)
        id_col, class_col = self.config.sample_id_column, self.config.class_column

        if id_col in features.columns:
            meta = metadata.set_index(id_col)
            missing = set(features[id_col]) - set(meta.index)
            if missing:
                raise DataValidationError(
                    f"{len(missing)} sample id(s) have no metadata, e.g. {sorted(map(str, missing))[:5]}",
                    stage=STAGE,
                )
            ids = features[id_col].to_numpy(dtype=object)
            target = meta.loc[ids, class_col].to_numpy(dtype=object)
            features = features.drop(columns=[id_col])
        else:
            ids = metadata[id_col].to_numpy(dtype=object)
            target = metadata[class_col].to_numpy(dtype=object)

        return prepare_dataset(features, target=target, labels=ids,
                               target_column=self.config.target_column,
                               label_column=self.config.label_column)
