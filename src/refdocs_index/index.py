"""Immutable inverted index over documentation sections."""

import logging
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from refdocs_index.models import Document, ParsedDocument, Posting, Section
from refdocs_index.tokenizer import heading_terms, normalize_query, tokenize

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Index:
    """A corpus snapshot: documents, the section arena and the posting table.

    Section ids are positions in ``sections``. An index is never mutated
    after it is built; a rebuild produces a new instance.
    """

    documents: tuple[Document, ...] = ()
    sections: tuple[Section, ...] = ()
    postings: Mapping[str, tuple[Posting, ...]] = field(default_factory=lambda: MappingProxyType({}))
    stem: bool = False
    _heading_terms: tuple[frozenset[str], ...] = field(default=(), repr=False, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.postings, MappingProxyType):
            object.__setattr__(self, "postings", MappingProxyType(dict(self.postings)))
        if len(self._heading_terms) != len(self.sections):
            terms = tuple(heading_terms(section.heading_path, self.stem) for section in self.sections)
            object.__setattr__(self, "_heading_terms", terms)

    @property
    def total_sections(self) -> int:
        return len(self.sections)

    @property
    def total_tokens(self) -> int:
        return sum(section.token_count for section in self.sections)

    def is_empty(self) -> bool:
        """Return True if the index holds no searchable sections."""
        return not self.sections

    def section(self, section_id: int) -> Section:
        """Return the section with the given id."""
        return self.sections[section_id]

    def postings_for(self, term: str) -> tuple[Posting, ...]:
        """Return the postings of a term, empty for unknown terms."""
        return self.postings.get(term, ())

    def document_frequency(self, term: str) -> int:
        """Return the number of sections containing a term."""
        return len(self.postings_for(term))

    def heading_terms(self, section_id: int) -> frozenset[str]:
        """Return the normalised terms of a section's heading path."""
        return self._heading_terms[section_id]

    def smallest_section_tokens(self) -> int | None:
        """Return the token count of the smallest section, or None when empty."""
        if not self.sections:
            return None
        return min(section.token_count for section in self.sections)

    def query_terms(self, query: str) -> list[str]:
        """Normalise a query the same way this index's tokens were normalised."""
        return normalize_query(query, self.stem)


def build_index(documents: Iterable[ParsedDocument], stem: bool = False) -> Index:
    """Build an index from parsed documents.

    Documents are traversed in path order and sections in document order;
    section ids are assigned densely in that traversal.

    Args:
        documents: Parsed documents to index.
        stem: Whether tokens are stemmed.

    Returns:
        A new Index. An empty index when the corpus has no tokens.
    """
    indexed_documents: list[Document] = []
    sections: list[Section] = []
    postings: dict[str, list[Posting]] = {}

    for parsed in sorted(documents, key=lambda doc: doc.path):
        section_ids = []
        for parsed_section in parsed.sections:
            stream = tokenize(parsed_section.text, stem)
            frequencies = Counter(stream.terms())
            token_count = stream.count()
            if token_count == 0:
                continue
            section_id = len(sections)
            sections.append(
                Section(
                    id=section_id,
                    path=parsed.path,
                    heading_path=parsed_section.heading_path,
                    text=parsed_section.text,
                    token_count=token_count,
                )
            )
            section_ids.append(section_id)
            for term, frequency in frequencies.items():
                postings.setdefault(term, []).append(Posting(section_id=section_id, frequency=frequency))
        indexed_documents.append(Document(path=parsed.path, title=parsed.title, section_ids=tuple(section_ids)))

    if not sections:
        logger.info("Corpus has no tokens; built an empty index")
        return Index(documents=tuple(indexed_documents), stem=stem)

    logger.info(
        "Built index: %d documents, %d sections, %d terms",
        len(indexed_documents),
        len(sections),
        len(postings),
    )
    return Index(
        documents=tuple(indexed_documents),
        sections=tuple(sections),
        postings={term: tuple(entries) for term, entries in postings.items()},
        stem=stem,
    )
