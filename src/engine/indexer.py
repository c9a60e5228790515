"""
Dataset indexer -- per-column frequency / sorted-value indexes plus
precomputed aggregates, cached per dataset identity.

An index is a pure function of the rows it was built from.  It is built
completely, frozen, and only then handed to the cache store in a single
``set`` call, so a reader always sees either the previous index or the new
one.  Two requests may race to rebuild the same dataset; that wastes work but
is never unsafe.  No lock is held while building, so builds for one dataset
never block another.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, ClassVar, Mapping, Sequence

from src.core.config import get_settings
from src.core.errors import IndexBuildCancelled
from src.core.logging import get_logger
from src.core.utils import fingerprint_rows, is_null, normalize_key, sort_key, to_number
from src.engine.cache import CacheStore, TTLCache
from src.engine.executor import compare, dataset_columns

logger = get_logger(__name__)

_CANCEL_CHECK_EVERY = 1000  # rows between cancellation checks

_MISSING = object()


@dataclass(frozen=True)
class ColumnIndex:
    unique_values: tuple
    frequencies: Mapping[str, int]              # normalized value -> count
    sorted_values: tuple
    positions: Mapping[str, tuple[int, ...]]    # normalized value -> row positions
    non_null_count: int


@dataclass(frozen=True)
class DatasetIndex:
    dataset_id: str
    columns: Mapping[str, ColumnIndex]
    precomputed: Mapping[str, float]
    row_count: int
    column_count: int
    fingerprint: str = ""
    created_at: float = field(default_factory=time.time)

    MISSING: ClassVar[object] = _MISSING

    def is_expired(self, ttl: float, now: float | None = None) -> bool:
        return ((now if now is not None else time.time()) - self.created_at) > ttl

    def matches(self, rows: Sequence[dict]) -> bool:
        """True when this index was built from exactly *rows*."""
        return self.row_count == len(rows) and self.fingerprint == fingerprint_rows(rows)

    def positions_for(self, column: str, value: Any) -> tuple[int, ...] | None:
        """Row positions whose *column* equals *value*; None if not indexed."""
        col = self.columns.get(column)
        if col is None:
            return None
        key = normalize_key(value)
        if key is None:
            return ()
        return col.positions.get(key, ())

    def aggregate(self, func: str, column: str | None) -> Any:
        """Precomputed aggregate, or ``DatasetIndex.MISSING`` when unavailable."""
        if column is None:
            return self.row_count if func == "COUNT" else _MISSING
        col = self.columns.get(column)
        if col is None:
            return _MISSING
        if func == "COUNT":
            return col.non_null_count
        if func == "SUM":
            return self.precomputed.get(f"{column}_sum", 0)
        if func in ("AVG", "MIN", "MAX"):
            return self.precomputed.get(f"{column}_{func.lower()}")
        return _MISSING


def _check_cancel(cancel_event: threading.Event | None, dataset_id: str) -> None:
    if cancel_event is not None and cancel_event.is_set():
        logger.info("Index build cancelled dataset=%s", dataset_id)
        raise IndexBuildCancelled(f"Index build for '{dataset_id}' was cancelled.")


def _index_column(
    column: str,
    rows: Sequence[dict],
    precomputed: dict[str, float],
    cancel_event: threading.Event | None,
    dataset_id: str,
) -> ColumnIndex:
    frequencies: dict[str, int] = {}
    positions: dict[str, list[int]] = {}
    uniques: dict[str, Any] = {}
    nums: list[int | float] = []

    for i, row in enumerate(rows):
        if i % _CANCEL_CHECK_EVERY == 0:
            _check_cancel(cancel_event, dataset_id)
        value = row.get(column)
        if is_null(value):
            continue
        key = normalize_key(value)
        frequencies[key] = frequencies.get(key, 0) + 1
        positions.setdefault(key, []).append(i)
        uniques.setdefault(key, value)
        num = to_number(value)
        if num is not None:
            nums.append(num)

    if nums:
        total = sum(nums)
        precomputed[f"{column}_sum"] = total
        precomputed[f"{column}_avg"] = total / len(nums)
        precomputed[f"{column}_min"] = min(nums)
        precomputed[f"{column}_max"] = max(nums)
        precomputed[f"{column}_count"] = len(nums)

    unique_values = tuple(uniques.values())
    return ColumnIndex(
        unique_values=unique_values,
        frequencies=MappingProxyType(frequencies),
        sorted_values=tuple(sorted(unique_values, key=sort_key)),
        positions=MappingProxyType({k: tuple(v) for k, v in positions.items()}),
        non_null_count=sum(frequencies.values()),
    )


def build_dataset_index(
    dataset_id: str,
    rows: Sequence[dict],
    cancel_event: threading.Event | None = None,
) -> DatasetIndex:
    """Build a complete index for *rows*.  Pure: touches no shared state."""
    started = time.perf_counter()
    columns = dataset_columns(rows)
    precomputed: dict[str, float] = {}
    column_index = {
        col: _index_column(col, rows, precomputed, cancel_event, dataset_id)
        for col in columns
    }
    precomputed["total_rows"] = len(rows)
    precomputed["total_columns"] = len(columns)

    index = DatasetIndex(
        dataset_id=dataset_id,
        columns=MappingProxyType(column_index),
        precomputed=MappingProxyType(precomputed),
        row_count=len(rows),
        column_count=len(columns),
        fingerprint=fingerprint_rows(rows),
    )
    logger.info(
        "Indexed dataset=%s rows=%d columns=%d in %dms",
        dataset_id, len(rows), len(columns), int((time.perf_counter() - started) * 1000),
    )
    return index


class DatasetIndexer:
    """Builds and serves :class:`DatasetIndex` objects through a cache store.

    Parameters
    ----------
    cache : CacheStore, optional
        Where indexes live.  Defaults to a private :class:`TTLCache`.
    ttl : float, optional
        Index lifetime in seconds.  Defaults to ``index_ttl_seconds``.
    """

    def __init__(self, cache: CacheStore | None = None, ttl: float | None = None):
        self._ttl = ttl if ttl is not None else get_settings().index_ttl_seconds
        self._cache = cache if cache is not None else TTLCache(ttl=self._ttl)
        self._known: set[str] = set()
        self._lock = threading.Lock()

    @staticmethod
    def _key(dataset_id: str) -> str:
        return f"dataset_index:{dataset_id}"

    # ── Build / lookup ──────────────────────────────────

    def build_index(
        self,
        dataset_id: str,
        rows: Sequence[dict],
        cancel_event: threading.Event | None = None,
    ) -> DatasetIndex:
        index = build_dataset_index(dataset_id, rows, cancel_event)
        self._cache.set(self._key(dataset_id), index, self._ttl)
        with self._lock:
            self._known.add(dataset_id)
        return index

    def get_index(self, dataset_id: str) -> DatasetIndex | None:
        """Return the live index, or None if absent or stale."""
        index = self._cache.get(self._key(dataset_id))
        if index is None:
            return None
        if index.is_expired(self._ttl):
            logger.info("Index for dataset=%s is stale", dataset_id)
            self._cache.delete(self._key(dataset_id))
            return None
        return index

    def get_or_build_index(
        self,
        dataset_id: str,
        rows: Sequence[dict],
        cancel_event: threading.Event | None = None,
    ) -> DatasetIndex:
        index = self.get_index(dataset_id)
        if index is not None:
            if index.matches(rows):
                logger.debug("Using cached index for dataset=%s", dataset_id)
                return index
            logger.info("Index for dataset=%s no longer matches its rows; rebuilding", dataset_id)
        return self.build_index(dataset_id, rows, cancel_event)

    # ── Fast lookups ────────────────────────────────────

    def fast_filter(
        self,
        dataset_id: str,
        rows: Sequence[dict],
        column: str,
        op: str,
        value: Any,
    ) -> list[dict]:
        """Rows where ``column <op> value``.

        Equality is answered from the index positions map.  Every other
        operator, and any dataset without a matching index, is a linear scan
        with the executor's comparison rules.
        """
        index = self.get_index(dataset_id)
        if op == "=" and index is not None and index.matches(rows):
            positions = index.positions_for(column, value)
            if positions is not None:
                return [rows[i] for i in positions]
        return [row for row in rows if compare(row.get(column), op, value)]

    def get_precomputed(self, dataset_id: str, key: str) -> float | None:
        index = self.get_index(dataset_id)
        if index is None:
            return None
        return index.precomputed.get(key)

    def column_stats(self, dataset_id: str, column: str) -> dict[str, Any] | None:
        index = self.get_index(dataset_id)
        if index is None or column not in index.columns:
            return None
        pre = index.precomputed
        return {
            "sum": pre.get(f"{column}_sum"),
            "avg": pre.get(f"{column}_avg"),
            "min": pre.get(f"{column}_min"),
            "max": pre.get(f"{column}_max"),
            "count": pre.get(f"{column}_count"),
            "unique_values": len(index.columns[column].unique_values),
        }

    # ── Invalidation ────────────────────────────────────

    def invalidate(self, dataset_id: str) -> bool:
        with self._lock:
            self._known.discard(dataset_id)
        removed = self._cache.delete(self._key(dataset_id))
        logger.info("Invalidated index dataset=%s removed=%s", dataset_id, removed)
        return removed

    def invalidate_all(self) -> int:
        with self._lock:
            known = list(self._known)
            self._known.clear()
        removed = sum(1 for dataset_id in known if self._cache.delete(self._key(dataset_id)))
        logger.info("Invalidated all indexes removed=%d", removed)
        return removed

    def cache_stats(self) -> dict[str, Any] | None:
        """Hit/miss counters of the backing store, when it is a :class:`TTLCache`."""
        if isinstance(self._cache, TTLCache):
            return self._cache.stats()
        return None

    def stats(self) -> list[dict[str, Any]]:
        with self._lock:
            known = sorted(self._known)
        now = time.time()
        result = []
        for dataset_id in known:
            index = self.get_index(dataset_id)
            if index is None:
                continue
            result.append({
                "dataset_id": dataset_id,
                "age_seconds": int(now - index.created_at),
                "rows": index.row_count,
                "columns": index.column_count,
            })
        return result
