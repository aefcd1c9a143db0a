"""Data models for reference documentation indexing."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Token:
    """A normalised word unit and its position within a section."""

    term: str
    position: int


@dataclass(frozen=True)
class ParsedSection:
    """A heading-delimited span produced by a parser, before ids are assigned."""

    heading_path: tuple[str, ...]
    text: str


@dataclass(frozen=True)
class ParsedDocument:
    """A parsed source file, ready to be indexed."""

    path: str
    title: str
    sections: tuple[ParsedSection, ...]


@dataclass(frozen=True)
class Section:
    """Represents an indexed section of a document.

    The id is the section's position in the index arena.
    """

    id: int
    path: str
    heading_path: tuple[str, ...]
    text: str
    token_count: int


@dataclass(frozen=True)
class Document:
    """Represents an indexed documentation file."""

    path: str
    title: str
    section_ids: tuple[int, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Posting:
    """Occurrences of a term in one section."""

    section_id: int
    frequency: int


@dataclass(frozen=True)
class RankedSection:
    """A section id with its relevance score."""

    section_id: int
    score: float


@dataclass(frozen=True)
class Excerpt:
    """A section returned by the retrieval service."""

    path: str
    heading_path: tuple[str, ...]
    text: str
    score: float
    token_count: int


@dataclass
class RetrievalResult:
    """Excerpts selected for a query within a token budget."""

    excerpts: list[Excerpt] = field(default_factory=list)
    total_tokens: int = 0
