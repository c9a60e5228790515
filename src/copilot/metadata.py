"""
Metadata analyzer -- infers column types and summary statistics from rows.

Type detection samples the first 100 non-null values of each column and
applies these tests in priority order:

  1. boolean   -- Python bools or the strings true/false/yes/no
  2. temporal  -- date/datetime objects or non-numeric strings that parse as dates
  3. numeric   -- ints/floats (never bools) or strings that parse as finite numbers
  4. text      -- everything else

Each test needs at least ``numeric_threshold`` (default 0.8) of the sample to
qualify.  The analyzer is a pure function of its input.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Iterable, Sequence

import pandas as pd

from src.core.config import get_settings
from src.core.logging import get_logger
from src.core.utils import is_null, normalize_key
from src.engine.executor import dataset_columns

logger = get_logger(__name__)

TYPE_SAMPLE_SIZE = 100
COLUMN_SAMPLE_ROWS = 100
SAMPLE_VALUES = 10
TOP_K = 5

_BOOL_STRINGS = {"true", "false", "yes", "no"}


# ── Models ──────────────────────────────────────────────


@dataclass(frozen=True)
class ColumnMetadata:
    name: str
    inferred_type: str                      # numeric | text | boolean | temporal
    null_count: int
    unique_count: int
    sample_values: tuple = ()
    min: float | None = None
    max: float | None = None
    mean: float | None = None
    median: float | None = None
    stddev: float | None = None
    q1: float | None = None
    q3: float | None = None
    top_values: tuple[tuple[Any, int], ...] = ()
    description: str = ""
    common_patterns: tuple[str, ...] = ()

    @property
    def is_numeric(self) -> bool:
        return self.inferred_type == "numeric"

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "name": self.name,
            "inferred_type": self.inferred_type,
            "null_count": self.null_count,
            "unique_count": self.unique_count,
            "sample_values": list(self.sample_values),
            "description": self.description,
            "common_patterns": list(self.common_patterns),
        }
        if self.is_numeric:
            for key in ("min", "max", "mean", "median", "stddev", "q1", "q3"):
                out[key] = getattr(self, key)
        if self.top_values:
            out["top_values"] = [{"value": v, "count": c} for v, c in self.top_values]
        return out


@dataclass(frozen=True)
class DatasetMetadata:
    row_count: int
    columns: dict[str, ColumnMetadata] = field(default_factory=dict)

    @property
    def column_count(self) -> int:
        return len(self.columns)

    @property
    def column_names(self) -> list[str]:
        return list(self.columns)

    def numeric_columns(self) -> list[str]:
        return [c.name for c in self.columns.values() if c.inferred_type == "numeric"]

    def temporal_columns(self) -> list[str]:
        return [c.name for c in self.columns.values() if c.inferred_type == "temporal"]

    def to_dict(self) -> dict[str, Any]:
        return {
            "row_count": self.row_count,
            "column_count": self.column_count,
            "columns": [c.to_dict() for c in self.columns.values()],
        }


# ── Type detection ──────────────────────────────────────


def _is_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return True
    return isinstance(value, str) and value.strip().lower() in _BOOL_STRINGS


def _as_series(values: Iterable[Any]) -> pd.Series:
    if isinstance(values, pd.Series):
        return values
    return pd.Series(list(values), dtype=object)


def numeric_series(values: Iterable[Any]) -> pd.Series:
    """Float view of *values*: NaN wherever a value is not a finite number.

    Values go through their string form, so booleans ("True"/"False") never
    count as numbers while numeric strings do.
    """
    series = _as_series(values)
    nums = pd.to_numeric(series.astype(str).str.strip(), errors="coerce").astype(float)
    return nums.where(nums.abs() != math.inf)


def temporal_series(values: Iterable[Any]) -> pd.Series:
    """UTC datetime view of *values*: NaT wherever a value is not date-like.

    date/datetime objects always qualify; strings qualify when they are not
    numbers and parse as a date.
    """
    series = _as_series(values)

    def as_text(value: Any) -> str | None:
        if isinstance(value, date):
            return value.isoformat()
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None

    text = series.map(as_text)
    text = text.where(numeric_series(series).isna() & text.notna())
    return pd.to_datetime(text, errors="coerce", utc=True, format="mixed")


def parse_temporal(value: Any) -> datetime | None:
    """Return a datetime for date-like *value*, else None.  Numbers never qualify."""
    parsed = temporal_series([value]).iloc[0]
    if pd.isna(parsed):
        return None
    return parsed.to_pydatetime()


def infer_type(values: Sequence[Any], threshold: float | None = None) -> str:
    """Infer the type of a column from its non-null *values*."""
    if threshold is None:
        threshold = get_settings().numeric_threshold
    sample = _as_series(list(values)[:TYPE_SAMPLE_SIZE])
    if sample.empty:
        return "text"

    if sample.map(_is_boolean).mean() >= threshold:
        return "boolean"
    if temporal_series(sample).notna().mean() >= threshold:
        return "temporal"
    if numeric_series(sample).notna().mean() >= threshold:
        return "numeric"
    return "text"


# ── Statistics ──────────────────────────────────────────


def plain_number(value: Any) -> int | float:
    """numpy scalar -> int when integral, else float."""
    f = float(value)
    return int(f) if f.is_integer() else f


def numeric_stats(values: Iterable[Any]) -> dict[str, float] | None:
    """min/max/mean/median/stddev/q1/q3 over the numeric values; None if there are none."""
    nums = numeric_series(values).dropna()
    if nums.empty:
        return None
    return {
        "min": plain_number(nums.min()),
        "max": plain_number(nums.max()),
        "mean": plain_number(nums.mean()),
        "median": plain_number(nums.quantile(0.5)),
        "stddev": float(nums.std(ddof=0)),
        "q1": plain_number(nums.quantile(0.25)),
        "q3": plain_number(nums.quantile(0.75)),
    }


def _top_values(present: pd.Series, keys: pd.Series, k: int = TOP_K) -> tuple[tuple[Any, int], ...]:
    first = dict(zip(keys[~keys.duplicated()], present[~keys.duplicated()]))
    counts = keys.value_counts(sort=False).sort_values(ascending=False, kind="stable")
    return tuple((first[key], int(count)) for key, count in counts.head(k).items())


# ── Descriptions ────────────────────────────────────────


def describe_column(name: str, inferred_type: str, stats: dict[str, Any]) -> str:
    lower = name.lower()
    if any(w in lower for w in ("price", "cost", "amount", "revenue", "sales")) and "min" in stats:
        return f"{inferred_type} value representing {name}, ranging from {stats['min']} to {stats['max']}"
    if "date" in lower or "time" in lower or inferred_type == "temporal":
        return f"Timestamp or date column for {name}"
    if lower == "id" or lower.endswith("_id"):
        return f"Unique identifier for {name.removesuffix('_id')}"
    if "name" in lower or "title" in lower:
        return f"Text field containing {name} with {stats['unique_count']} unique values"
    if "count" in lower or "quantity" in lower:
        return f"Numeric count of {name}"
    return f"{inferred_type} column containing {name} data"


def common_patterns(name: str, inferred_type: str) -> tuple[str, ...]:
    lower = name.lower()
    patterns: list[str] = []
    if inferred_type == "numeric":
        patterns += [f"total {name}", f"average {name}", f"top 10 by {name}"]
        if "price" in lower or "sales" in lower:
            patterns += [f"revenue from {name}", f"{name} trends"]
    elif inferred_type in ("text", "boolean"):
        patterns += [f"count by {name}", f"group by {name}", f"unique {name}"]
    if inferred_type == "temporal" or "date" in lower or "time" in lower:
        patterns += [f"trends over {name}", f"group by {name}"]
    return tuple(dict.fromkeys(patterns))


# ── Public API ──────────────────────────────────────────


def analyze_column(name: str, rows: Sequence[dict], threshold: float | None = None) -> ColumnMetadata:
    values = pd.Series([row.get(name) for row in rows], dtype=object)
    present = values[~values.map(is_null).astype(bool)]
    inferred = infer_type(present.tolist(), threshold)

    keys = present.map(normalize_key)
    uniques = present[~keys.duplicated()].tolist()

    stats: dict[str, Any] = {"unique_count": len(uniques)}
    extra: dict[str, Any] = {}
    if inferred == "numeric":
        numeric = numeric_stats(present)
        if numeric:
            stats.update(numeric)
            extra.update(numeric)
    elif inferred in ("text", "boolean"):
        extra["top_values"] = _top_values(present, keys)

    return ColumnMetadata(
        name=name,
        inferred_type=inferred,
        null_count=len(values) - len(present),
        unique_count=len(uniques),
        sample_values=tuple(uniques[:SAMPLE_VALUES]),
        description=describe_column(name, inferred, stats),
        common_patterns=common_patterns(name, inferred),
        **extra,
    )


def analyze_dataset(
    rows: Sequence[dict],
    columns: Sequence[str] | None = None,
    threshold: float | None = None,
) -> DatasetMetadata:
    """Profile *rows* into a :class:`DatasetMetadata`.

    Parameters
    ----------
    rows : sequence of dict
        The dataset.  Never mutated.
    columns : sequence of str, optional
        Explicit column list.  Defaults to the union of keys across the first
        100 rows.
    threshold : float, optional
        Share of sampled values that must pass a type test.
    """
    names = list(columns) if columns is not None else dataset_columns(rows, COLUMN_SAMPLE_ROWS)
    result = DatasetMetadata(
        row_count=len(rows),
        columns={name: analyze_column(name, rows, threshold) for name in names},
    )
    logger.info(
        "Analyzed dataset rows=%d columns=%d numeric=%s",
        result.row_count, result.column_count, result.numeric_columns(),
    )
    return result
