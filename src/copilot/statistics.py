"""
Statistical path -- z-score anomaly detection for "outlier"-style questions.

Answered directly from the data; no LLM call.  A value is anomalous when
``|z| > threshold`` (default 2.0).  Severity: high above 4, medium above 3,
low otherwise.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

from src.copilot.classifier import ClassifiedQuestion
from src.copilot.fallback import pick_numeric_column
from src.copilot.metadata import DatasetMetadata, numeric_series, plain_number
from src.core.logging import get_logger

logger = get_logger(__name__)

Z_THRESHOLD = 2.0


@dataclass
class Anomaly:
    index: int
    value: float
    z_score: float
    severity: str   # low | medium | high
    row: dict


@dataclass
class StatisticalAnswer:
    column: str
    mean: float | None
    stddev: float | None
    threshold: float
    anomalies: list[Anomaly] = field(default_factory=list)

    def to_rows(self) -> list[dict[str, Any]]:
        return [
            {**a.row, "z_score": round(a.z_score, 2), "severity": a.severity}
            for a in self.anomalies
        ]

    def summary(self) -> str:
        if self.mean is None:
            return f"No numeric values found in **{self.column}**."
        header = (
            f"Checked **{self.column}** for outliers (mean {self.mean:,.2f}, "
            f"std dev {self.stddev:,.2f}, |z| > {self.threshold})."
        )
        if not self.anomalies:
            return f"{header}\n\nNo anomalies found."
        lines = [
            f"{i}. row {a.index + 1}: {a.value:,} (z = {a.z_score:.2f}, {a.severity})"
            for i, a in enumerate(self.anomalies[:10], 1)
        ]
        return f"{header}\n\nFound {len(self.anomalies)} anomalies:\n" + "\n".join(lines)


def _severity(z: float) -> str:
    if z > 4:
        return "high"
    if z > 3:
        return "medium"
    return "low"


def detect_anomalies(
    rows: Sequence[dict],
    column: str,
    threshold: float = Z_THRESHOLD,
) -> StatisticalAnswer:
    """Flag values of *column* whose absolute z-score exceeds *threshold*."""
    nums = numeric_series(row.get(column) for row in rows).dropna()
    if nums.empty:
        return StatisticalAnswer(column=column, mean=None, stddev=None, threshold=threshold)

    mean = float(nums.mean())
    stddev = float(nums.std(ddof=0))
    answer = StatisticalAnswer(column=column, mean=mean, stddev=stddev, threshold=threshold)
    if stddev == 0:
        return answer

    z_scores = ((nums - mean) / stddev).abs()
    flagged = z_scores[z_scores > threshold].sort_values(ascending=False, kind="stable")
    for i, z in flagged.items():
        answer.anomalies.append(
            Anomaly(int(i), plain_number(nums[i]), float(z), _severity(z), rows[i])
        )
    logger.info("Anomaly scan column=%s flagged=%d", column, len(answer.anomalies))
    return answer


def answer_statistical(
    rows: Sequence[dict],
    metadata: DatasetMetadata,
    classification: ClassifiedQuestion,
    threshold: float = Z_THRESHOLD,
) -> StatisticalAnswer | None:
    """Run anomaly detection on the most relevant numeric column, if any."""
    column = pick_numeric_column(classification.keywords, metadata)
    if column is None:
        numeric = metadata.numeric_columns()
        if not numeric:
            return None
        column = numeric[0]
    return detect_anomalies(rows, column, threshold)
