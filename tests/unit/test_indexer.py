"""
Unit tests -- dataset indexer: index contents, cache lifecycle, fast lookups.
"""
import threading
import time

import pytest

from src.core.errors import IndexBuildCancelled
from src.engine.cache import TTLCache
from src.engine.indexer import DatasetIndexer, build_dataset_index

ROWS = [
    {"region": "East", "sales": 10, "flag": True},
    {"region": "east", "sales": "20", "flag": False},
    {"region": "West", "sales": 5.5, "flag": None},
    {"region": None, "sales": "n/a", "flag": True},
]


@pytest.fixture
def indexer():
    return DatasetIndexer(cache=TTLCache(ttl=60), ttl=60)


# ── build_dataset_index ─────────────────────────────────


def test_index_shape():
    index = build_dataset_index("ds", ROWS)
    assert index.row_count == 4
    assert index.column_count == 3
    assert set(index.columns) == {"region", "sales", "flag"}
    assert index.precomputed["total_rows"] == 4
    assert index.precomputed["total_columns"] == 3


def test_frequencies_share_normalized_keys():
    col = build_dataset_index("ds", ROWS).columns["region"]
    assert dict(col.frequencies) == {"east": 2, "west": 1}
    assert col.non_null_count == 3
    assert col.unique_values == ("East", "West")


def test_positions_for_equality():
    index = build_dataset_index("ds", ROWS)
    assert index.positions_for("region", "EAST") == (0, 1)
    assert index.positions_for("sales", 20) == (1,)
    assert index.positions_for("region", "north") == ()
    assert index.positions_for("region", None) == ()
    assert index.positions_for("missing", "x") is None


def test_precomputed_numeric_aggregates():
    pre = build_dataset_index("ds", ROWS).precomputed
    assert pre["sales_sum"] == 35.5
    assert pre["sales_count"] == 3
    assert pre["sales_min"] == 5.5
    assert pre["sales_max"] == 20
    assert pre["sales_avg"] == pytest.approx(35.5 / 3)
    assert "region_sum" not in pre
    assert "flag_sum" not in pre


def test_index_aggregate_lookup():
    index = build_dataset_index("ds", ROWS)
    assert index.aggregate("COUNT", None) == 4
    assert index.aggregate("COUNT", "region") == 3
    assert index.aggregate("SUM", "region") == 0
    assert index.aggregate("MAX", "region") is None
    assert index.aggregate("SUM", "unknown") is index.MISSING


def test_sorted_values_numbers_before_text():
    rows = [{"v": "b"}, {"v": 3}, {"v": "a"}, {"v": 1}]
    col = build_dataset_index("ds", rows).columns["v"]
    assert col.sorted_values == (1, 3, "a", "b")


def test_index_is_immutable():
    index = build_dataset_index("ds", ROWS)
    with pytest.raises(TypeError):
        index.precomputed["sales_sum"] = 0
    with pytest.raises(AttributeError):
        index.row_count = 0


def test_empty_dataset_index():
    index = build_dataset_index("empty", [])
    assert index.row_count == 0
    assert index.column_count == 0
    assert dict(index.columns) == {}


def test_cancelled_build_raises():
    event = threading.Event()
    event.set()
    with pytest.raises(IndexBuildCancelled):
        build_dataset_index("ds", ROWS, cancel_event=event)


# ── DatasetIndexer ──────────────────────────────────────


def test_build_then_get(indexer):
    built = indexer.build_index("ds", ROWS)
    assert indexer.get_index("ds") is built
    assert indexer.get_index("other") is None


def test_get_or_build_reuses_live_index(indexer):
    first = indexer.get_or_build_index("ds", ROWS)
    assert indexer.get_or_build_index("ds", ROWS) is first


def test_get_or_build_rebuilds_when_row_count_changes(indexer):
    first = indexer.get_or_build_index("ds", ROWS)
    second = indexer.get_or_build_index("ds", ROWS[:2])
    assert second is not first
    assert second.row_count == 2


def test_get_or_build_rebuilds_when_values_change(indexer):
    first = indexer.get_or_build_index("ds", ROWS)
    changed = [dict(ROWS[0], sales=1000)] + ROWS[1:]
    second = indexer.get_or_build_index("ds", changed)
    assert second is not first
    assert second.precomputed["sales_sum"] == 1025.5
    assert indexer.get_or_build_index("ds", changed) is second


def test_stale_index_is_not_returned():
    indexer = DatasetIndexer(cache=TTLCache(ttl=60), ttl=0.1)
    indexer.build_index("ds", ROWS)
    time.sleep(0.15)
    assert indexer.get_index("ds") is None
    assert indexer.get_or_build_index("ds", ROWS).row_count == 4


def test_fast_filter_equality_and_scan(indexer):
    indexer.build_index("ds", ROWS)
    assert indexer.fast_filter("ds", ROWS, "region", "=", "east") == ROWS[:2]
    assert indexer.fast_filter("ds", ROWS, "sales", ">", 6) == ROWS[:2]


def test_fast_filter_ignores_index_of_other_rows(indexer):
    indexer.build_index("ds", ROWS)
    changed = [dict(ROWS[0], region="West")] + ROWS[1:]
    assert indexer.fast_filter("ds", changed, "region", "=", "west") == [changed[0], changed[2]]


def test_fast_filter_without_index_scans(indexer):
    assert indexer.fast_filter("nope", ROWS, "region", "=", "west") == [ROWS[2]]


def test_get_precomputed_and_column_stats(indexer):
    assert indexer.get_precomputed("ds", "sales_sum") is None
    indexer.build_index("ds", ROWS)
    assert indexer.get_precomputed("ds", "sales_sum") == 35.5
    stats = indexer.column_stats("ds", "sales")
    assert stats["count"] == 3
    assert stats["unique_values"] == 4
    assert indexer.column_stats("ds", "missing") is None


def test_invalidate(indexer):
    indexer.build_index("a", ROWS)
    indexer.build_index("b", ROWS)
    assert indexer.invalidate("a") is True
    assert indexer.invalidate("a") is False
    assert indexer.get_index("a") is None
    assert indexer.get_index("b") is not None


def test_invalidate_all(indexer):
    indexer.build_index("a", ROWS)
    indexer.build_index("b", ROWS)
    assert indexer.invalidate_all() == 2
    assert indexer.stats() == []


def test_stats_lists_live_indexes(indexer):
    indexer.build_index("b", ROWS)
    indexer.build_index("a", ROWS[:1])
    stats = indexer.stats()
    assert [s["dataset_id"] for s in stats] == ["a", "b"]
    assert stats[0]["rows"] == 1
    assert stats[1]["columns"] == 3
    assert stats[0]["age_seconds"] >= 0


def test_concurrent_builds_for_distinct_datasets(indexer):
    errors = []

    def build(dataset_id):
        try:
            indexer.get_or_build_index(dataset_id, ROWS)
        except Exception as exc:  # pragma: no cover
            errors.append(exc)

    threads = [threading.Thread(target=build, args=(f"ds{i}",)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert errors == []
    assert len(indexer.stats()) == 8


def test_cache_stats_from_default_store(indexer):
    indexer.build_index("ds", ROWS)
    indexer.get_index("ds")
    stats = indexer.cache_stats()
    assert stats["size"] == 1
    assert stats["hits"] == 1


class DictStore:
    def __init__(self):
        self.data = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, ttl=None):
        self.data[key] = value

    def delete(self, key):
        return self.data.pop(key, None) is not None


def test_any_cache_store_can_back_the_indexer():
    indexer = DatasetIndexer(cache=DictStore(), ttl=60)
    built = indexer.build_index("ds", ROWS)
    assert indexer.get_index("ds") is built
    assert indexer.cache_stats() is None
    assert indexer.invalidate("ds") is True
