"""
Error kinds raised inside the copilot pipeline.

Library code raises these; ``src.copilot.service.ask`` is the single place
that turns them into user-facing results.  Nothing here should ever reach
the HTTP layer.
"""
from __future__ import annotations


class CopilotError(Exception):
    """Base class for every pipeline error."""

    kind = "CopilotError"


class AmbiguousQuestion(CopilotError):
    """The question is under-specified relative to the dataset schema."""

    kind = "AmbiguousQuestion"

    def __init__(self, questions: list[str]):
        super().__init__("; ".join(questions))
        self.questions = questions


class NoUsableQuery(CopilotError):
    """The generator produced nothing parseable, or the 'cannot answer' sentinel."""

    kind = "NoUsableQuery"


class LLMUnavailable(CopilotError, RuntimeError):
    """The completion service failed, timed out, or is not configured."""

    kind = "LLMUnavailable"


class IndexBuildCancelled(CopilotError):
    kind = "IndexBuildCancelled"


# ── Query engine errors ─────────────────────────────────


class QueryError(CopilotError):
    kind = "QueryError"


class UnknownColumnError(QueryError):
    """A query referenced a column that is not in the dataset."""

    kind = "UnknownColumn"

    def __init__(self, column: str, available: list[str]):
        super().__init__(
            f"Unknown column '{column}'. Available: {', '.join(available) or '(none)'}"
        )
        self.column = column
        self.available = available


class QuerySyntaxError(QueryError):
    """The query text is outside the supported grammar."""

    kind = "SyntaxError"


class DisallowedKeywordError(QuerySyntaxError):
    """A mutating keyword appeared anywhere in the query text."""

    def __init__(self, keyword: str):
        super().__init__(f"Disallowed keyword detected: '{keyword}'.")
        self.keyword = keyword


class ExecutionError(QueryError):
    """Unexpected fault while evaluating a parsed query."""

    kind = "ExecutionError"
