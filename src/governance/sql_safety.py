"""
Deterministic query safety checks (non-LLM).

These checks are the hard boundary in front of the parser.  They operate
purely on the raw query text, before tokenizing, so that a mutating keyword
is rejected even where the grammar could never express it.

Checks performed:
  1. Query must start with SELECT
  2. No multi-statement text (';' followed by another statement)
  3. No mutating keywords (DROP, DELETE, UPDATE, INSERT, ALTER, CREATE, TRUNCATE)
  4. No SQL comments (--, /*)
"""
from __future__ import annotations

import re

from src.core.errors import DisallowedKeywordError, QuerySyntaxError
from src.core.logging import get_logger

logger = get_logger(__name__)

DISALLOWED_KEYWORDS = ("DROP", "DELETE", "UPDATE", "INSERT", "ALTER", "CREATE", "TRUNCATE")

# ── Compiled patterns ────────────────────────────────────

_DANGEROUS_KW = re.compile(
    r"\b(" + "|".join(DISALLOWED_KEYWORDS) + r")\b",
    re.IGNORECASE,
)

_MULTI_STMT = re.compile(r";\s*\S")  # semicolon followed by non-whitespace

_COMMENT_INLINE = re.compile(r"--")
_COMMENT_BLOCK = re.compile(r"/\*")


def check_sql_safety(sql: str) -> list[str]:
    """Return a list of safety violations (empty list = safe)."""
    errors: list[str] = []
    sql_stripped = sql.strip()

    # ── 1. Must start with SELECT ────────────────────
    if not sql_stripped.upper().startswith("SELECT"):
        errors.append("Query must be a SELECT statement.")

    # ── 2. No multi-statement ────────────────────────
    if _MULTI_STMT.search(sql_stripped):
        errors.append("Multi-statement queries are not allowed (found ';' followed by another statement).")

    # ── 3. No mutating keywords ──────────────────────
    m = _DANGEROUS_KW.search(sql_stripped)
    if m:
        errors.append(f"Disallowed keyword detected: '{m.group(1).upper()}'.")

    # ── 4. No SQL comments ───────────────────────────
    if _COMMENT_INLINE.search(sql_stripped):
        errors.append("Inline comments (--) are not allowed.")
    if _COMMENT_BLOCK.search(sql_stripped):
        errors.append("Block comments (/* */) are not allowed.")

    if errors:
        logger.warning("Query safety violations: %s", errors)
    return errors


def assert_read_only(sql: str) -> None:
    """Raise if *sql* fails any safety check.

    A mutating keyword raises :class:`DisallowedKeywordError`; every other
    violation raises :class:`QuerySyntaxError`.
    """
    m = _DANGEROUS_KW.search(sql)
    if m:
        logger.warning("Rejected query containing '%s'", m.group(1).upper())
        raise DisallowedKeywordError(m.group(1).upper())
    errors = check_sql_safety(sql)
    if errors:
        raise QuerySyntaxError(" ".join(errors))
