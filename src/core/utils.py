"""
Small shared utilities: timing and value coercion for untyped row data.

Rows arrive as plain dicts whose values may be numbers, numeric strings,
booleans, blanks or None.  Every component that compares or aggregates
values (metadata analyzer, indexer, executor) goes through these helpers so
they all agree on what "numeric", "null" and "equal" mean.
"""
from __future__ import annotations

import hashlib
import math
import numbers
import time
from contextlib import contextmanager
from typing import Any, Generator, Iterable


@contextmanager
def timer() -> Generator[dict, None, None]:
    """Context manager that records elapsed wall-clock milliseconds."""
    result: dict = {}
    start = time.perf_counter()
    try:
        yield result
    finally:
        result["elapsed_ms"] = int((time.perf_counter() - start) * 1000)


def is_null(value: Any) -> bool:
    """None, NaN and blank strings all count as missing."""
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def to_number(value: Any) -> int | float | None:
    """Coerce *value* to an int/float, or return None when it is not numeric.

    Booleans are never numeric.  Strings must parse completely (no trailing
    junk, no digit-group underscores) and be finite.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, numbers.Real):
        f = float(value)
        return f if math.isfinite(f) else None
    if isinstance(value, str):
        s = value.strip()
        if not s or "_" in s:
            return None
        try:
            return int(s)
        except ValueError:
            pass
        try:
            f = float(s)
        except ValueError:
            return None
        return f if math.isfinite(f) else None
    return None


def to_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        s = value.strip().lower()
        if s == "true":
            return True
        if s == "false":
            return False
    return None


def normalize_key(value: Any) -> str | None:
    """Canonical string used for equality tests and frequency maps.

    ``10``, ``10.0`` and ``"10"`` share a key; text is stripped and
    case-folded; booleans become ``"true"``/``"false"``.  Nulls have no key.
    """
    if is_null(value):
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    num = to_number(value)
    if num is not None:
        if isinstance(num, float) and num.is_integer():
            return str(int(num))
        return repr(num) if isinstance(num, float) else str(num)
    return str(value).strip().casefold()


def sort_key(value: Any) -> tuple[int, Any]:
    """Total ordering for non-null values: numbers first, then text."""
    num = to_number(value)
    if num is not None:
        return (0, num)
    return (1, str(value).casefold())


def fingerprint_rows(rows: Iterable[dict]) -> str:
    """Content digest of *rows*: changing any value changes the digest."""
    digest = hashlib.sha256()
    for row in rows:
        digest.update(repr(row).encode())
        digest.update(b"\n")
    return digest.hexdigest()
