"""Token normalisation for section text and queries.

Prose is lowercased and split on anything that is not a letter or digit.
Fenced code keeps punctuation inside its words (``istio.io/v1`` stays one
token) and additionally emits the alphanumeric parts of such compounds at the
same position, so a prose query for ``istio`` still finds it.
"""

import re
from collections.abc import Iterable, Iterator

from refdocs_index.models import Token

PROSE_WORD = re.compile(r"[^\W_]+")
CODE_WORD = re.compile(r"\w+(?:[^\w\s]+\w+)*")
FENCE_OPEN = re.compile(r"^ {0,3}(`{3,}|~{3,})(.*)$")
FENCE_CLOSE = re.compile(r"^ {0,3}(`{3,}|~{3,})\s*$")


class FenceTracker:
    """Tracks whether successive lines fall inside a fenced code block."""

    def __init__(self) -> None:
        self.marker: str | None = None
        self.opened_at: int | None = None

    @property
    def in_code(self) -> bool:
        return self.marker is not None

    def feed(self, line: str, line_number: int = 0) -> bool:
        """Consume a line and report whether it is a fence delimiter.

        Args:
            line: Source line without its newline.
            line_number: 1-indexed line number, remembered for error reporting.

        Returns:
            True if the line opened or closed a fence.
        """
        if self.marker is None:
            match = FENCE_OPEN.match(line)
            if not match:
                return False
            marker, info = match.groups()
            # Backtick fences cannot carry backticks in their info string
            if marker[0] == "`" and "`" in info:
                return False
            self.marker = marker
            self.opened_at = line_number
            return True

        match = FENCE_CLOSE.match(line)
        if match and match.group(1)[0] == self.marker[0] and len(match.group(1)) >= len(self.marker):
            self.marker = None
            self.opened_at = None
            return True
        return False


def stem_term(word: str) -> str:
    """Strip common English suffixes from a term.

    Length guards keep short words such as ``using`` from collapsing into
    meaningless stems.
    """
    for suffix, min_length in (
        ("ation", 8),
        ("ment", 8),
        ("ness", 8),
        ("ing", 7),
        ("ies", 6),
        ("ed", 6),
        ("es", 6),
        ("s", 5),
    ):
        if len(word) >= min_length and word.endswith(suffix):
            if suffix == "ies":
                return word[:-3] + "y"
            if suffix == "s" and word.endswith("ss"):
                return word
            return word[: -len(suffix)]
    return word


def _prose_terms(text: str, stem: bool) -> list[str]:
    words = PROSE_WORD.findall(text.lower())
    if stem:
        return [stem_term(word) for word in words]
    return words


def _code_terms(word: str, stem: bool) -> list[str]:
    parts = _prose_terms(word, stem)
    if PROSE_WORD.fullmatch(word):
        return parts
    return list(dict.fromkeys([word, *parts]))


def iter_tokens(text: str, stem: bool = False) -> Iterator[Token]:
    """Yield normalised tokens for section text.

    Args:
        text: Section text, possibly containing fenced code blocks.
        stem: Whether to apply suffix stemming to prose terms.

    Yields:
        Tokens in document order. Terms derived from one code word share a position.
    """
    position = 0
    fence = FenceTracker()
    for line in text.splitlines():
        if fence.feed(line):
            continue
        if fence.in_code:
            for match in CODE_WORD.finditer(line.lower()):
                for term in _code_terms(match.group(), stem):
                    yield Token(term, position)
                position += 1
        else:
            for term in _prose_terms(line, stem):
                yield Token(term, position)
                position += 1


class TokenStream:
    """Restartable stream of tokens over a fixed text."""

    def __init__(self, text: str, stem: bool = False) -> None:
        self.text = text
        self.stem = stem

    def __iter__(self) -> Iterator[Token]:
        return iter_tokens(self.text, self.stem)

    def terms(self) -> list[str]:
        """Return the normalised terms in order."""
        return [token.term for token in self]

    def count(self) -> int:
        """Return the number of token positions in the text."""
        last = -1
        for token in self:
            last = token.position
        return last + 1


def tokenize(text: str, stem: bool = False) -> TokenStream:
    """Tokenise section text into a restartable stream."""
    return TokenStream(text, stem)


def normalize_query(query: str, stem: bool = False) -> list[str]:
    """Normalise a query exactly like indexed prose."""
    return _prose_terms(query, stem)


def heading_terms(heading_path: Iterable[str], stem: bool = False) -> frozenset[str]:
    """Return the set of normalised terms appearing in a heading path."""
    terms: set[str] = set()
    for heading in heading_path:
        terms.update(_prose_terms(heading, stem))
    return frozenset(terms)
