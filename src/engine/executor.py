"""
In-memory query executor.

Runs a parsed :class:`~src.engine.ast.Query` over a list of row dicts:

    filter -> group -> aggregate -> order -> limit

Predicates are interpreted by :func:`evaluate`, a pure recursive walk over the
AST.  When a :class:`~src.engine.indexer.DatasetIndex` built from the same rows
is supplied, single-equality filters and global aggregates are served from it;
the results are identical to the scan path.
"""
from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING, Any, Iterable, Sequence

from src.core.errors import ExecutionError, QueryError, QuerySyntaxError, UnknownColumnError
from src.core.logging import get_logger
from src.core.utils import is_null, normalize_key, sort_key, to_number
from src.engine.ast import (
    Aggregate,
    And,
    Column,
    Compare,
    IsNull,
    Not,
    Or,
    OrderItem,
    Predicate,
    Query,
    QueryResult,
    SelectItem,
    Star,
)

if TYPE_CHECKING:
    from src.engine.indexer import DatasetIndex

logger = get_logger(__name__)

Row = dict[str, Any]


def dataset_columns(rows: Iterable[Row], sample: int | None = None) -> list[str]:
    """Union of keys across *rows* (or the first *sample* rows), first-seen order."""
    seen: dict[str, None] = {}
    for i, row in enumerate(rows):
        if sample is not None and i >= sample:
            break
        for key in row:
            seen.setdefault(key, None)
    return list(seen)


# ── Predicate evaluation ────────────────────────────────


def _like(value: Any, pattern: str) -> bool:
    text = str(value).casefold()
    pos = 0
    for part in (p for p in pattern.casefold().split("%") if p):
        idx = text.find(part, pos)
        if idx < 0:
            return False
        pos = idx + len(part)
    return True


def compare(value: Any, op: str, literal: Any) -> bool:
    """Evaluate ``value <op> literal`` for one row value.

    Null values fail every comparison.  Ordering operators need numbers on
    both sides; a non-numeric operand fails the predicate, not the query.
    """
    if is_null(value):
        return False
    if op in ("=", "!="):
        lit_key = normalize_key(literal)
        if lit_key is None:
            return False
        equal = normalize_key(value) == lit_key
        return equal if op == "=" else not equal
    if op == "LIKE":
        return _like(value, str(literal))
    if op == "NOT LIKE":
        return not _like(value, str(literal))

    left, right = to_number(value), to_number(literal)
    if left is None or right is None:
        return False
    if op == ">":
        return left > right
    if op == "<":
        return left < right
    if op == ">=":
        return left >= right
    if op == "<=":
        return left <= right
    raise ExecutionError(f"Unsupported operator '{op}'.")


def evaluate(pred: Predicate, row: Row) -> bool:
    if isinstance(pred, Compare):
        return compare(row.get(pred.column), pred.op, pred.value)
    if isinstance(pred, IsNull):
        return is_null(row.get(pred.column)) != pred.negated
    if isinstance(pred, And):
        return evaluate(pred.left, row) and evaluate(pred.right, row)
    if isinstance(pred, Or):
        return evaluate(pred.left, row) or evaluate(pred.right, row)
    if isinstance(pred, Not):
        return not evaluate(pred.operand, row)
    raise ExecutionError(f"Unknown predicate node {type(pred).__name__}.")


# ── Aggregates ──────────────────────────────────────────


def aggregate(func: str, column: str | None, rows: Sequence[Row]) -> Any:
    """Compute one aggregate.  Empty input: SUM -> 0, AVG/MIN/MAX -> None."""
    if func == "COUNT":
        if column is None:
            return len(rows)
        return sum(1 for r in rows if not is_null(r.get(column)))

    nums = [n for n in (to_number(r.get(column)) for r in rows) if n is not None]
    if func == "SUM":
        return sum(nums)
    if not nums:
        return None
    if func == "AVG":
        return sum(nums) / len(nums)
    if func == "MIN":
        return min(nums)
    if func == "MAX":
        return max(nums)
    raise ExecutionError(f"Unsupported aggregate '{func}'.")


# ── Column binding ──────────────────────────────────────


def _resolver(available: list[str]):
    lowered: dict[str, list[str]] = {}
    for name in available:
        lowered.setdefault(name.lower(), []).append(name)

    def resolve(name: str) -> str:
        if name in available:
            return name
        matches = lowered.get(name.lower(), [])
        if len(matches) == 1:
            return matches[0]
        raise UnknownColumnError(name, available)

    return resolve


def _bind_predicate(pred: Predicate | None, resolve) -> Predicate | None:
    if pred is None:
        return None
    if isinstance(pred, (Compare, IsNull)):
        return replace(pred, column=resolve(pred.column))
    if isinstance(pred, Not):
        return Not(_bind_predicate(pred.operand, resolve))
    return type(pred)(_bind_predicate(pred.left, resolve), _bind_predicate(pred.right, resolve))


def _bind_expr(expr, resolve):
    if isinstance(expr, Column):
        return Column(resolve(expr.name))
    if isinstance(expr, Aggregate) and expr.column is not None:
        return Aggregate(expr.func, resolve(expr.column))
    return expr


def bind(query: Query, available: list[str]) -> Query:
    """Map every column reference onto a real dataset column.

    Exact names win; otherwise a unique case-insensitive match is used.
    ORDER BY may also name an output alias, matched case-insensitively.

    Raises
    ------
    UnknownColumnError
        If a reference matches no column.
    """
    resolve = _resolver(available)

    select = tuple(SelectItem(_bind_expr(item.expr, resolve), item.alias) for item in query.select)
    output_names = {item.output_name for item in select}
    output_lower = {item.output_name.lower(): item.output_name for item in reversed(select)}

    order_by: list[OrderItem] = []
    for item in query.order_by:
        key = item.key
        if isinstance(key, Column):
            if key.name in output_names:
                order_by.append(item)
                continue
            if key.name not in available and key.name.lower() in output_lower:
                order_by.append(OrderItem(Column(output_lower[key.name.lower()]), item.descending))
                continue
        order_by.append(OrderItem(_bind_expr(key, resolve), item.descending))

    return replace(
        query,
        select=select,
        where=_bind_predicate(query.where, resolve),
        group_by=tuple(resolve(c) for c in query.group_by),
        order_by=tuple(order_by),
    )


# ── Pipeline stages ─────────────────────────────────────


def _index_usable(index: DatasetIndex | None, rows: Sequence[Row]) -> bool:
    return index is not None and index.matches(rows)


def _filter(where: Predicate | None, rows: Sequence[Row], index: DatasetIndex | None) -> list[Row]:
    if where is None:
        return list(rows)
    if isinstance(where, Compare) and where.op == "=" and index is not None:
        positions = index.positions_for(where.column, where.value)
        if positions is not None:
            logger.debug("Index equality lookup column=%s hits=%d", where.column, len(positions))
            return [rows[i] for i in positions]
    return [row for row in rows if evaluate(where, row)]


def _project(query: Query, rows: list[Row], available: list[str]) -> tuple[list[tuple[Row, Row]], list[str]]:
    for order in query.order_by:
        if isinstance(order.key, Aggregate):
            raise QuerySyntaxError("ORDER BY an aggregate requires an aggregate query.")

    star = any(isinstance(item.expr, Star) for item in query.select)
    if star:
        columns = list(available) or dataset_columns(rows)
    else:
        columns = [item.output_name for item in query.select]

    records: list[tuple[Row, Row]] = []
    for row in rows:
        if star:
            out = {col: row.get(col) for col in columns}
        else:
            out = {item.output_name: row.get(item.expr.name) for item in query.select}
        records.append((out, row))
    return records, columns


def _global_aggregates_from_index(query: Query, index: DatasetIndex) -> Row | None:
    out: Row = {}
    for item in query.select:
        agg = item.expr
        if not isinstance(agg, Aggregate):
            return None
        value = index.aggregate(agg.func, agg.column)
        if value is index.MISSING:
            return None
        out[item.output_name] = value
    return out


def _aggregate(
    query: Query,
    rows: list[Row],
    index: DatasetIndex | None,
) -> tuple[list[tuple[Row, Row]], list[str]]:
    if any(isinstance(item.expr, Star) for item in query.select):
        raise QuerySyntaxError("SELECT * cannot be combined with GROUP BY or aggregate functions.")
    for item in query.select:
        if isinstance(item.expr, Column) and item.expr.name not in query.group_by:
            raise QuerySyntaxError(
                f"Column '{item.expr.name}' must appear in GROUP BY or inside an aggregate function."
            )

    columns = [item.output_name for item in query.select]
    order_aggs = [o.key for o in query.order_by if isinstance(o.key, Aggregate)]
    for order in query.order_by:
        if (
            isinstance(order.key, Column)
            and order.key.name not in columns
            and order.key.name not in query.group_by
        ):
            raise QuerySyntaxError(
                f"ORDER BY '{order.key.name}' must name a selected column or a GROUP BY column."
            )

    if not query.group_by:
        if index is not None and not order_aggs:
            out = _global_aggregates_from_index(query, index)
            if out is not None:
                logger.debug("Served global aggregates from index")
                return [(out, {})], columns
        groups: dict[tuple, list[Row]] = {(): rows}
    else:
        groups = {}
        for row in rows:
            key = tuple(
                None if is_null(row.get(col)) else row.get(col) for col in query.group_by
            )
            groups.setdefault(key, []).append(row)

    records: list[tuple[Row, Row]] = []
    for key, members in groups.items():
        lookup: Row = dict(zip(query.group_by, key))
        out: Row = {}
        for item in query.select:
            if isinstance(item.expr, Column):
                out[item.output_name] = lookup[item.expr.name]
            else:
                out[item.output_name] = aggregate(item.expr.func, item.expr.column, members)
        for agg in order_aggs:
            lookup[agg.label] = aggregate(agg.func, agg.column, members)
        records.append((out, lookup))
    return records, columns


def _order_value(key: Column | Aggregate, record: tuple[Row, Row]) -> Any:
    out, lookup = record
    if isinstance(key, Aggregate):
        return lookup.get(key.label)
    if key.name in out:
        return out[key.name]
    return lookup.get(key.name)


def _order(records: list[tuple[Row, Row]], order_by: Sequence[OrderItem]) -> list[tuple[Row, Row]]:
    """Stable multi-key sort; nulls sort last in either direction."""
    for item in reversed(order_by):
        present = [r for r in records if not is_null(_order_value(item.key, r))]
        missing = [r for r in records if is_null(_order_value(item.key, r))]
        present.sort(key=lambda r: sort_key(_order_value(item.key, r)), reverse=item.descending)
        records = present + missing
    return records


# ── Public API ──────────────────────────────────────────


def execute(
    query: Query,
    rows: Sequence[Row],
    columns: list[str] | None = None,
    index: DatasetIndex | None = None,
) -> QueryResult:
    """Run *query* over *rows*.

    Parameters
    ----------
    query : Query
        Output of :func:`src.engine.parser.parse_query`.
    rows : sequence of dict
        The full dataset (or a sample, for dry runs).
    columns : list[str], optional
        Known column names.  Defaults to the union of keys across *rows*.
    index : DatasetIndex, optional
        Index built from exactly these rows; ignored if it was built from other rows.

    Raises
    ------
    UnknownColumnError, QuerySyntaxError
        For references or shapes the dataset cannot satisfy.
    ExecutionError
        For any unexpected evaluator fault.
    """
    available = list(columns) if columns is not None else dataset_columns(rows)
    if not _index_usable(index, rows):
        index = None

    try:
        bound = bind(query, available) if available else query
        filtered = _filter(bound.where, rows, index)

        if bound.is_aggregate:
            records, out_columns = _aggregate(bound, filtered, index if bound.where is None else None)
        else:
            records, out_columns = _project(bound, filtered, available)

        if bound.order_by:
            records = _order(records, bound.order_by)

        total = len(records)
        if bound.limit is not None:
            records = records[: bound.limit]
    except QueryError:
        raise
    except Exception as exc:
        logger.exception("Query execution failed")
        raise ExecutionError(f"Execution error: {exc}") from exc

    return QueryResult(
        rows=[out for out, _ in records],
        columns=out_columns,
        truncated=len(records) < total,
        row_count_before_limit=total,
    )
