"""Budgeted retrieval over a published index snapshot."""

import logging
import threading
from collections.abc import Callable
from enum import Enum
from typing import Any

from pydantic import ValidationError

from refdocs_index.exceptions import BudgetTooSmall, EmptyQuery, IndexNotReady
from refdocs_index.index import Index
from refdocs_index.models import Excerpt, RetrievalResult
from refdocs_index.ranker import Ranker
from refdocs_index.schemas import ErrorCode, ExcerptResult, QueryError, QueryRequest, QueryResponse

logger = logging.getLogger(__name__)


class ServiceState(Enum):
    """Lifecycle of a retrieval service."""

    BUILDING = "building"
    READY = "ready"


def select_within_budget(index: Index, ranker: Ranker, query: str, max_tokens: int) -> RetrievalResult:
    """Greedily pick ranked sections that fit a token budget.

    Sections are taken in rank order. A section larger than the remaining
    budget is skipped, never truncated, and smaller sections further down the
    ranking may still be taken.

    Args:
        index: Index snapshot.
        ranker: Ranker used to order sections.
        query: Free-text query.
        max_tokens: Token budget.

    Returns:
        RetrievalResult with the selected excerpts.

    Raises:
        EmptyQuery: If the query has no terms.
        BudgetTooSmall: If nothing was selected because even the smallest
            section in the corpus exceeds the budget.
        ValueError: If the budget is negative.
    """
    if max_tokens < 0:
        msg = f"Token budget must not be negative: {max_tokens}"
        raise ValueError(msg)

    ranked = ranker.rank(index, query)
    result = RetrievalResult()
    remaining = max_tokens
    for item in ranked:
        section = index.section(item.section_id)
        if section.token_count > remaining:
            continue
        result.excerpts.append(
            Excerpt(
                path=section.path,
                heading_path=section.heading_path,
                text=section.text,
                score=item.score,
                token_count=section.token_count,
            )
        )
        remaining -= section.token_count
        if remaining == 0:
            break
    result.total_tokens = max_tokens - remaining

    if ranked and not result.excerpts:
        smallest = index.smallest_section_tokens()
        if smallest is not None and smallest > max_tokens:
            raise BudgetTooSmall(max_tokens, smallest)
    return result


class RetrievalService:
    """Serves queries against the most recently published index.

    The service starts in ``BUILDING`` and moves to ``READY`` on the first
    publish. Later publishes swap the snapshot without leaving ``READY``;
    queries always read one snapshot reference, so no query sees a partial
    update.
    """

    def __init__(self, ranker: Ranker | None = None, ready_timeout: float | None = None) -> None:
        self.ranker = ranker or Ranker()
        self.ready_timeout = ready_timeout
        self._index: Index | None = None
        self._ready = threading.Event()
        self._publish_lock = threading.Lock()

    @property
    def state(self) -> ServiceState:
        return ServiceState.READY if self._ready.is_set() else ServiceState.BUILDING

    def publish(self, index: Index) -> None:
        """Install a new index snapshot."""
        with self._publish_lock:
            self._index = index
            self._ready.set()
        logger.info("Published index snapshot with %d sections", index.total_sections)

    def build(self, builder: Callable[[], Index]) -> Index:
        """Run a build and publish its result.

        Queries issued before the first build completes wait for it; queries
        during a rebuild keep using the previous snapshot.

        Args:
            builder: Callable returning a freshly built Index.

        Returns:
            The published Index.
        """
        index = builder()
        self.publish(index)
        return index

    def wait_until_ready(self, timeout: float | None = None) -> Index:
        """Block until a snapshot is published and return it.

        Raises:
            IndexNotReady: If no snapshot is published within the timeout.
        """
        if timeout is None:
            timeout = self.ready_timeout
        index = self._index if self._ready.wait(timeout) else None
        if index is None:
            msg = f"No index was published within {timeout} seconds"
            raise IndexNotReady(msg)
        return index

    def retrieve(self, query: str, max_tokens: int, timeout: float | None = None) -> RetrievalResult:
        """Return the best sections for a query within a token budget.

        Args:
            query: Free-text query.
            max_tokens: Token budget.
            timeout: Seconds to wait for the first snapshot.

        Returns:
            RetrievalResult; empty when nothing relevant fits.
        """
        index = self.wait_until_ready(timeout)
        result = select_within_budget(index, self.ranker, query, max_tokens)
        logger.debug(
            "Query %r returned %d sections (%d/%d tokens)",
            query,
            len(result.excerpts),
            result.total_tokens,
            max_tokens,
        )
        return result

    def handle(self, payload: dict[str, Any] | QueryRequest, timeout: float | None = None) -> QueryResponse:
        """Answer a ``{query, max_tokens}`` request with a structured response.

        Errors are reported in the response's ``error`` field rather than
        raised, so an empty result always means no relevant content.
        """
        try:
            request = payload if isinstance(payload, QueryRequest) else QueryRequest.model_validate(payload)
        except ValidationError as exc:
            return QueryResponse(error=QueryError(code=ErrorCode.INVALID_REQUEST, message=str(exc)))

        try:
            result = self.retrieve(request.query, request.max_tokens, timeout=timeout)
        except EmptyQuery as exc:
            return QueryResponse(error=QueryError(code=ErrorCode.EMPTY_QUERY, message=str(exc)))
        except BudgetTooSmall as exc:
            return QueryResponse(
                error=QueryError(code=ErrorCode.BUDGET_TOO_SMALL, message=str(exc), min_budget=exc.minimum)
            )
        except IndexNotReady as exc:
            return QueryResponse(error=QueryError(code=ErrorCode.NOT_READY, message=str(exc)))

        return QueryResponse(
            results=[
                ExcerptResult(
                    heading_path=list(excerpt.heading_path),
                    text=excerpt.text,
                    score=excerpt.score,
                    path=excerpt.path,
                    token_count=excerpt.token_count,
                )
                for excerpt in result.excerpts
            ],
            total_tokens=result.total_tokens,
        )
