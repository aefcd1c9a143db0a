"""Errors raised while building and querying a documentation index."""


class RefDocsError(Exception):
    """Base class for indexing and retrieval errors."""


class MalformedDocument(RefDocsError):
    """A source document could not be segmented."""

    def __init__(self, path: str, reason: str, line: int | None = None) -> None:
        self.path = path
        self.reason = reason
        self.line = line
        location = f"{path}:{line}" if line is not None else path
        super().__init__(f"{location}: {reason}")


class EmptyQuery(RefDocsError):
    """The query has no searchable terms after normalisation."""

    def __init__(self, query: str) -> None:
        self.query = query
        super().__init__(f"Query has no searchable terms: {query!r}")


class BudgetTooSmall(RefDocsError):
    """The token budget is below the size of the smallest indexed section."""

    def __init__(self, budget: int, minimum: int) -> None:
        self.budget = budget
        self.minimum = minimum
        super().__init__(f"Token budget {budget} is too small; the smallest section needs {minimum} tokens")


class IndexNotReady(RefDocsError, TimeoutError):
    """No index snapshot was published before the wait timed out."""
