"""
Query AST -- the only representation the executor accepts.

Nodes are frozen dataclasses produced exclusively by ``src.engine.parser``.
Predicates are a tagged tree (Compare / IsNull / And / Or / Not) evaluated by
a plain recursive function; no query text is ever turned into code.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

AGGREGATE_FUNCTIONS = ("COUNT", "SUM", "AVG", "MIN", "MAX")
COMPARE_OPS = ("=", "!=", ">", "<", ">=", "<=", "LIKE", "NOT LIKE")

Literal = Union[str, int, float, bool]


# ── Select list ─────────────────────────────────────────


@dataclass(frozen=True)
class Column:
    name: str


@dataclass(frozen=True)
class Aggregate:
    func: str               # one of AGGREGATE_FUNCTIONS
    column: str | None      # None means COUNT(*)

    @property
    def label(self) -> str:
        return f"{self.func}({self.column if self.column is not None else '*'})"


@dataclass(frozen=True)
class Star:
    """``SELECT *``"""


@dataclass(frozen=True)
class SelectItem:
    expr: Column | Aggregate | Star
    alias: str | None = None

    @property
    def output_name(self) -> str:
        if self.alias:
            return self.alias
        if isinstance(self.expr, Column):
            return self.expr.name
        if isinstance(self.expr, Aggregate):
            return self.expr.label
        return "*"


# ── Predicates ──────────────────────────────────────────


@dataclass(frozen=True)
class Compare:
    column: str
    op: str                 # one of COMPARE_OPS
    value: Literal


@dataclass(frozen=True)
class IsNull:
    column: str
    negated: bool = False   # IS NOT NULL


@dataclass(frozen=True)
class And:
    left: "Predicate"
    right: "Predicate"


@dataclass(frozen=True)
class Or:
    left: "Predicate"
    right: "Predicate"


@dataclass(frozen=True)
class Not:
    operand: "Predicate"


Predicate = Union[Compare, IsNull, And, Or, Not]


# ── Query ───────────────────────────────────────────────


@dataclass(frozen=True)
class OrderItem:
    key: Column | Aggregate
    descending: bool = False


@dataclass(frozen=True)
class Query:
    select: tuple[SelectItem, ...]
    table: str
    where: Predicate | None = None
    group_by: tuple[str, ...] = ()
    order_by: tuple[OrderItem, ...] = ()
    limit: int | None = None

    @property
    def is_aggregate(self) -> bool:
        return bool(self.group_by) or any(
            isinstance(item.expr, Aggregate) for item in self.select
        )


@dataclass
class QueryResult:
    """Rows produced by the executor."""
    rows: list[dict] = field(default_factory=list)
    columns: list[str] = field(default_factory=list)
    truncated: bool = False
    row_count_before_limit: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.rows
