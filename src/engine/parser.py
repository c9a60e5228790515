"""
Tokenizer + recursive-descent parser for the single-table query dialect.

Grammar (keywords are case-insensitive)::

    query      := SELECT items FROM name [WHERE or_expr]
                  [GROUP BY name {, name}] [ORDER BY order {, order}]
                  [LIMIT integer]
    items      := '*' | item {, item}
    item       := (name | FUNC '(' (name | '*') ')') [[AS] alias]
    or_expr    := and_expr {OR and_expr}
    and_expr   := not_expr {AND not_expr}
    not_expr   := NOT not_expr | '(' or_expr ')' | comparison
    comparison := name (op literal | [NOT] LIKE string | IS [NOT] NULL)
    order      := (name | FUNC '(' ... ')' | ordinal) [ASC | DESC]

Identifiers may be double-quoted or back-ticked to allow spaces and
reserved words.  String literals use single quotes with ``''`` escaping.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from src.core.errors import QuerySyntaxError
from src.engine.ast import (
    AGGREGATE_FUNCTIONS,
    Aggregate,
    And,
    Column,
    Compare,
    IsNull,
    Literal,
    Not,
    Or,
    OrderItem,
    Predicate,
    Query,
    SelectItem,
    Star,
)
from src.governance.sql_safety import assert_read_only

KEYWORDS = frozenset({
    "SELECT", "FROM", "WHERE", "GROUP", "BY", "ORDER", "ASC", "DESC",
    "LIMIT", "AND", "OR", "NOT", "LIKE", "IS", "NULL", "AS", "TRUE", "FALSE",
})

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<string>'(?:[^']|'')*')
  | (?P<qident>"(?:[^"]|"")*"|`[^`]*`)
  | (?P<number>-?(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?)
  | (?P<op><=|>=|<>|!=|=|<|>)
  | (?P<comma>,)
  | (?P<lparen>\()
  | (?P<rparen>\))
  | (?P<star>\*)
  | (?P<word>[A-Za-z_][A-Za-z0-9_]*)
    """,
    re.VERBOSE,
)


@dataclass(frozen=True)
class Token:
    kind: str   # keyword | ident | string | number | op | comma | lparen | rparen | star | eof
    value: object
    pos: int


def tokenize(text: str) -> list[Token]:
    tokens: list[Token] = []
    pos = 0
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if m is None:
            raise QuerySyntaxError(f"Unexpected character {text[pos]!r} at position {pos}.")
        kind = m.lastgroup
        raw = m.group()
        if kind == "ws":
            pass
        elif kind == "string":
            tokens.append(Token("string", raw[1:-1].replace("''", "'"), pos))
        elif kind == "qident":
            inner = raw[1:-1]
            if raw[0] == '"':
                inner = inner.replace('""', '"')
            tokens.append(Token("ident", inner, pos))
        elif kind == "number":
            is_float = any(c in raw for c in ".eE")
            tokens.append(Token("number", float(raw) if is_float else int(raw), pos))
        elif kind == "op":
            tokens.append(Token("op", "!=" if raw == "<>" else raw, pos))
        elif kind == "word":
            upper = raw.upper()
            if upper in KEYWORDS:
                tokens.append(Token("keyword", upper, pos))
            else:
                tokens.append(Token("ident", raw, pos))
        else:
            tokens.append(Token(kind, raw, pos))
        pos = m.end()
    tokens.append(Token("eof", None, len(text)))
    return tokens


class _Parser:
    def __init__(self, tokens: list[Token]):
        self._tokens = tokens
        self._i = 0

    # ── Token helpers ───────────────────────────────

    @property
    def _tok(self) -> Token:
        return self._tokens[self._i]

    def _peek(self, offset: int = 1) -> Token:
        idx = min(self._i + offset, len(self._tokens) - 1)
        return self._tokens[idx]

    def _advance(self) -> Token:
        tok = self._tok
        if tok.kind != "eof":
            self._i += 1
        return tok

    def _at_keyword(self, *words: str) -> bool:
        return self._tok.kind == "keyword" and self._tok.value in words

    def _accept_keyword(self, word: str) -> bool:
        if self._at_keyword(word):
            self._advance()
            return True
        return False

    def _expect_keyword(self, word: str) -> None:
        if not self._accept_keyword(word):
            self._fail(f"Expected {word}")

    def _expect(self, kind: str, what: str) -> Token:
        if self._tok.kind != kind:
            self._fail(f"Expected {what}")
        return self._advance()

    def _fail(self, message: str) -> None:
        tok = self._tok
        found = "end of query" if tok.kind == "eof" else repr(tok.value)
        raise QuerySyntaxError(f"{message} at position {tok.pos}, found {found}.")

    def _name(self, what: str = "column name") -> str:
        return str(self._expect("ident", what).value)

    # ── Grammar ─────────────────────────────────────

    def query(self) -> Query:
        self._expect_keyword("SELECT")
        select = self._select_list()
        self._expect_keyword("FROM")
        table = self._name("table name")

        where: Predicate | None = None
        if self._accept_keyword("WHERE"):
            where = self._or_expr()

        group_by: list[str] = []
        if self._accept_keyword("GROUP"):
            self._expect_keyword("BY")
            group_by.append(self._name())
            while self._tok.kind == "comma":
                self._advance()
                group_by.append(self._name())

        order_by: list[OrderItem] = []
        if self._accept_keyword("ORDER"):
            self._expect_keyword("BY")
            order_by.append(self._order_item(select))
            while self._tok.kind == "comma":
                self._advance()
                order_by.append(self._order_item(select))

        limit: int | None = None
        if self._accept_keyword("LIMIT"):
            tok = self._expect("number", "row count after LIMIT")
            if not isinstance(tok.value, int) or tok.value < 0:
                raise QuerySyntaxError(f"LIMIT must be a non-negative integer, got {tok.value!r}.")
            limit = tok.value

        if self._tok.kind != "eof":
            self._fail("Unexpected token")

        return Query(
            select=tuple(select),
            table=table,
            where=where,
            group_by=tuple(group_by),
            order_by=tuple(order_by),
            limit=limit,
        )

    def _select_list(self) -> list[SelectItem]:
        if self._tok.kind == "star":
            self._advance()
            return [SelectItem(Star())]
        items = [self._select_item()]
        while self._tok.kind == "comma":
            self._advance()
            items.append(self._select_item())
        return items

    def _select_item(self) -> SelectItem:
        if self._tok.kind == "ident" and self._peek().kind == "lparen":
            expr: Column | Aggregate = self._aggregate()
        else:
            expr = Column(self._name())

        alias: str | None = None
        if self._accept_keyword("AS"):
            alias = self._name("alias")
        elif self._tok.kind == "ident":
            alias = self._name("alias")
        return SelectItem(expr, alias)

    def _aggregate(self) -> Aggregate:
        func_tok = self._advance()
        func = str(func_tok.value).upper()
        if func not in AGGREGATE_FUNCTIONS:
            raise QuerySyntaxError(
                f"Unsupported function '{func_tok.value}'. "
                f"Allowed: {', '.join(AGGREGATE_FUNCTIONS)}."
            )
        self._expect("lparen", "'('")
        if self._tok.kind == "star":
            if func != "COUNT":
                raise QuerySyntaxError(f"{func}(*) is not allowed; only COUNT(*) may take '*'.")
            self._advance()
            column = None
        else:
            column = self._name()
        self._expect("rparen", "')'")
        return Aggregate(func, column)

    def _order_item(self, select: list[SelectItem]) -> OrderItem:
        key: Column | Aggregate
        if self._tok.kind == "number":
            ordinal = self._advance().value
            if not isinstance(ordinal, int) or not 1 <= ordinal <= len(select):
                raise QuerySyntaxError(f"ORDER BY position {ordinal} is out of range.")
            item = select[ordinal - 1]
            if isinstance(item.expr, Star):
                raise QuerySyntaxError("ORDER BY position cannot refer to '*'.")
            key = Column(item.output_name)
        elif self._tok.kind == "ident" and self._peek().kind == "lparen":
            key = self._aggregate()
        else:
            key = Column(self._name())

        descending = False
        if self._accept_keyword("DESC"):
            descending = True
        else:
            self._accept_keyword("ASC")
        return OrderItem(key, descending)

    def _or_expr(self) -> Predicate:
        left = self._and_expr()
        while self._accept_keyword("OR"):
            left = Or(left, self._and_expr())
        return left

    def _and_expr(self) -> Predicate:
        left = self._not_expr()
        while self._accept_keyword("AND"):
            left = And(left, self._not_expr())
        return left

    def _not_expr(self) -> Predicate:
        if self._accept_keyword("NOT"):
            return Not(self._not_expr())
        if self._tok.kind == "lparen":
            self._advance()
            inner = self._or_expr()
            self._expect("rparen", "')'")
            return inner
        return self._comparison()

    def _comparison(self) -> Predicate:
        column = self._name()

        if self._accept_keyword("IS"):
            negated = self._accept_keyword("NOT")
            self._expect_keyword("NULL")
            return IsNull(column, negated)

        if self._accept_keyword("NOT"):
            self._expect_keyword("LIKE")
            return Compare(column, "NOT LIKE", self._like_pattern())

        if self._accept_keyword("LIKE"):
            return Compare(column, "LIKE", self._like_pattern())

        op = self._expect("op", "comparison operator").value
        return Compare(column, str(op), self._literal())

    def _like_pattern(self) -> str:
        return str(self._expect("string", "quoted LIKE pattern").value)

    def _literal(self) -> Literal:
        tok = self._tok
        if tok.kind in ("string", "number"):
            self._advance()
            return tok.value  # type: ignore[return-value]
        if self._at_keyword("TRUE", "FALSE"):
            self._advance()
            return tok.value == "TRUE"
        if self._at_keyword("NULL"):
            raise QuerySyntaxError("Use IS NULL / IS NOT NULL to test for missing values.")
        self._fail("Expected a literal value")
        raise AssertionError("unreachable")


def parse_query(text: str) -> Query:
    """Parse *text* into a :class:`Query`.

    Raises
    ------
    DisallowedKeywordError
        If a mutating keyword appears anywhere in the text.
    QuerySyntaxError
        If the text is outside the supported grammar.
    """
    assert_read_only(text)
    parser = _Parser(tokenize(text))
    return parser.query()
