"""
Misclassification Reporter

Compares aligned cluster labels with prior classes and lists the samples
whose cluster disagrees with their class.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

import numpy as np
import pandas as pd

from mislabel_qc.utils.helpers import check_length

logger = logging.getLogger(__name__)

STAGE = "misclassification"

MISMATCH_COLUMNS = ["sample_id", "expected_class", "assigned_cluster"]


@dataclass
class MisclassificationReport:
    """Per-sample agreement flags plus the aggregate misclassification rate."""
    sample_ids: np.ndarray
    expected: np.ndarray
    assigned: np.ndarray
    agreement: np.ndarray       # True where assigned == expected
    rate: float                 # mismatched / n
    rate_percent: float         # 100 * rate, rounded for reporting
    mismatches: pd.DataFrame

    @property
    def n_samples(self) -> int:
        return len(self.agreement)

    @property
    def n_misclassified(self) -> int:
        return int((~self.agreement).sum())

    def to_frame(self) -> pd.DataFrame:
        """One row per sample: id, prior class, aligned cluster, misclassified flag."""
        return pd.DataFrame({
            "sample_id": self.sample_ids,
            "prior_class": self.expected,
            "cluster": self.assigned,
            "misclassified": ~self.agreement,
        })

    def to_dict(self) -> Dict[str, Any]:
        return {
            "n_samples": self.n_samples,
            "n_misclassified": self.n_misclassified,
            "misclassification_rate": self.rate,
            "misclassification_rate_percent": self.rate_percent,
            "misclassified_samples": self.mismatches.to_dict(orient="records"),
        }


def default_sample_ids(n: int) -> np.ndarray:
    """Row-name style identifiers "1".."n"."""
    return np.array([str(i + 1) for i in range(n)], dtype=object)


def build_misclassification_report(aligned: Sequence, true_labels: Sequence,
                                   sample_ids: Optional[Sequence] = None,
                                   precision: int = 1) -> MisclassificationReport:
    """
    Flag every observation whose aligned cluster differs from its true label.

    Args:
        aligned: Aligned cluster labels, in the same label space as `true_labels`.
        true_labels: Prior class per observation.
        sample_ids: Identifier per observation; row positions when omitted.
        precision: Decimal places of the percentage rate.

    Returns:
        MisclassificationReport.

    Raises:
        DimensionMismatchError: If the vectors differ in length.
    """
    expected = np.array(list(true_labels), dtype=object)
    assigned = np.array(list(aligned), dtype=object)
    check_length(assigned, len(expected), "aligned", STAGE)

    n = len(expected)
    if sample_ids is None:
        ids = default_sample_ids(n)
    else:
        ids = np.array(list(sample_ids), dtype=object)
        check_length(ids, n, "sample_ids", STAGE)

    agreement = np.array([a == e for a, e in zip(assigned, expected)], dtype=bool)
    n_wrong = int((~agreement).sum())
    rate = n_wrong / n if n else 0.0

    mismatches = pd.DataFrame({
        "sample_id": ids[~agreement],
        "expected_class": expected[~agreement],
        "assigned_cluster": assigned[~agreement],
    }, columns=MISMATCH_COLUMNS)

    report = MisclassificationReport(
        sample_ids=ids,
        expected=expected,
        assigned=assigned,
        agreement=agreement,
        rate=rate,
        rate_percent=round(100.0 * rate, precision),
        mismatches=mismatches.reset_index(drop=True),
    )
    logger.info(f"Misclassification rate: {report.rate_percent}% ({n_wrong}/{n} samples)")
    return report
