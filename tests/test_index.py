"""Tests for index construction."""

import dataclasses

import pytest

from refdocs_index.index import Index, build_index
from refdocs_index.models import ParsedDocument, ParsedSection, Posting


def _doc(path: str, *sections: tuple[tuple[str, ...], str]) -> ParsedDocument:
    return ParsedDocument(
        path=path,
        title=path,
        sections=tuple(ParsedSection(heading_path=heading_path, text=text) for heading_path, text in sections),
    )


def test_section_ids_follow_traversal_order() -> None:
    """Test that ids are dense and assigned by document path then section order."""
    index = build_index(
        [
            _doc("b.md", (("B1",), "beta one"), (("B2",), "beta two")),
            _doc("a.md", (("A1",), "alpha")),
        ]
    )

    assert [section.id for section in index.sections] == [0, 1, 2]
    assert [section.path for section in index.sections] == ["a.md", "b.md", "b.md"]
    assert index.documents[1].section_ids == (1, 2)
    assert index.section(2).heading_path == ("B2",)


def test_postings_count_term_frequencies() -> None:
    """Test the posting table contents."""
    index = build_index(
        [
            _doc("a.md", (("One",), "mesh mesh gateway"), (("Two",), "mesh")),
        ]
    )

    assert index.postings_for("mesh") == (Posting(section_id=0, frequency=2), Posting(section_id=1, frequency=1))
    assert index.postings_for("gateway") == (Posting(section_id=0, frequency=1),)
    assert index.document_frequency("mesh") == 2
    assert index.postings_for("unknown") == ()


def test_token_counts_and_heading_terms() -> None:
    """Test per-section derived data."""
    index = build_index([_doc("a.md", (("Certificate Rotation",), "rotate certs often"))])

    assert index.section(0).token_count == 3
    assert index.total_tokens == 3
    assert index.heading_terms(0) == frozenset({"certificate", "rotation"})
    assert index.smallest_section_tokens() == 3


def test_empty_corpus_builds_empty_index() -> None:
    """Test that an empty corpus is not an error."""
    index = build_index([])

    assert index.is_empty()
    assert index.total_sections == 0
    assert dict(index.postings) == {}
    assert index.smallest_section_tokens() is None


def test_documents_without_tokens_give_empty_index() -> None:
    """Test that sections with no tokens are not indexed."""
    index = build_index([_doc("a.md", (("Title",), "  ...  "))])

    assert index.is_empty()
    assert len(index.documents) == 1


def test_index_is_immutable() -> None:
    """Test that a built index cannot be modified."""
    index = build_index([_doc("a.md", (("A",), "alpha"))])

    with pytest.raises(dataclasses.FrozenInstanceError):
        index.stem = True  # type: ignore[misc]
    with pytest.raises(TypeError):
        index.postings["beta"] = ()  # type: ignore[index]


def test_stemmed_index_normalises_queries_the_same_way() -> None:
    """Test that the index applies its stemming mode to queries."""
    index = build_index([_doc("a.md", (("Retry",), "retry policies"))], stem=True)

    assert index.stem
    assert index.postings_for("policy")
    assert index.query_terms("Policies") == ["policy"]


def test_builds_do_not_share_state() -> None:
    """Test that successive builds are independent."""
    first = build_index([_doc("a.md", (("A",), "alpha"))])
    second = build_index([_doc("b.md", (("B",), "beta"))])

    assert first.postings_for("beta") == ()
    assert second.postings_for("alpha") == ()
    assert isinstance(second, Index)
