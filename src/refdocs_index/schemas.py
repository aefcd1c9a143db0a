"""Request and response models for the retrieval interface."""

from enum import Enum

from pydantic import BaseModel, Field


class QueryRequest(BaseModel):
    """A retrieval request."""

    query: str = Field(..., description="Free-text query")
    max_tokens: int = Field(..., ge=0, description="Maximum tokens of section text to return")


class ExcerptResult(BaseModel):
    """One section returned for a query."""

    heading_path: list[str] = Field(default_factory=list, description="Headings from outermost to innermost")
    text: str = Field(..., description="Section text")
    score: float = Field(..., description="Relevance score")
    path: str = Field(..., description="Source document path")
    token_count: int = Field(..., ge=0, description="Tokens in the section text")


class ErrorCode(str, Enum):
    """Machine-readable retrieval error codes."""

    EMPTY_QUERY = "empty_query"
    BUDGET_TOO_SMALL = "budget_too_small"
    INVALID_REQUEST = "invalid_request"
    NOT_READY = "not_ready"


class QueryError(BaseModel):
    """Structured error returned instead of results."""

    code: ErrorCode
    message: str
    min_budget: int | None = Field(default=None, description="Smallest budget that can return a section")


class QueryResponse(BaseModel):
    """A retrieval response. Exactly one of results or error is meaningful."""

    results: list[ExcerptResult] = Field(default_factory=list)
    total_tokens: int = Field(default=0, ge=0)
    error: QueryError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None
