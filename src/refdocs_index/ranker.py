"""TF-IDF relevance ranking with a heading-match boost."""

import logging
import math

from refdocs_index.exceptions import EmptyQuery
from refdocs_index.index import Index
from refdocs_index.models import RankedSection

logger = logging.getLogger(__name__)

DEFAULT_HEADING_BOOST = 2.0


def inverse_document_frequency(total_sections: int, sections_containing_term: int) -> float:
    """Smoothed IDF; always positive, defined for unknown terms."""
    return math.log((total_sections + 1) / (sections_containing_term + 1)) + 1


class Ranker:
    """Scores index sections against free-text queries.

    score = sum over distinct query terms of tf * idf, plus ``heading_boost``
    for every query term found in the section's heading path.
    """

    def __init__(self, heading_boost: float = DEFAULT_HEADING_BOOST) -> None:
        """Initialise ranker.

        Args:
            heading_boost: Score added per query term present in a heading path.
        """
        self.heading_boost = heading_boost

    def rank(self, index: Index, query: str, limit: int | None = None) -> list[RankedSection]:
        """Rank sections of an index for a query.

        Args:
            index: Index snapshot to search.
            query: Free-text query.
            limit: Maximum number of results; all matches when None.

        Returns:
            Sections with a positive score, highest first. Ties are broken by
            shorter heading path, then lower section id.

        Raises:
            EmptyQuery: If the query has no terms after normalisation.
            ValueError: If limit is not positive.
        """
        if limit is not None and limit < 1:
            msg = f"Result limit must be positive: {limit}"
            raise ValueError(msg)

        terms = list(dict.fromkeys(index.query_terms(query)))
        if not terms:
            raise EmptyQuery(query)
        if index.is_empty():
            return []

        scores: dict[int, float] = {}
        total = index.total_sections
        for term in terms:
            postings = index.postings_for(term)
            idf = inverse_document_frequency(total, len(postings))
            for posting in postings:
                scores[posting.section_id] = scores.get(posting.section_id, 0.0) + posting.frequency * idf

        if self.heading_boost:
            term_set = set(terms)
            for section in index.sections:
                matched = len(term_set & index.heading_terms(section.id))
                if matched:
                    scores[section.id] = scores.get(section.id, 0.0) + matched * self.heading_boost

        ranked = sorted(
            (RankedSection(section_id=section_id, score=score) for section_id, score in scores.items() if score > 0),
            key=lambda item: (-item.score, len(index.section(item.section_id).heading_path), item.section_id),
        )
        logger.debug("Query %r matched %d sections", query, len(ranked))
        if limit is not None:
            return ranked[:limit]
        return ranked
