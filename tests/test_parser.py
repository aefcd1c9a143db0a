"""Tests for Markdown and RST document parsing."""

from pathlib import Path

import pytest

from refdocs_index.exceptions import MalformedDocument
from refdocs_index.parser import DocumentParser


@pytest.fixture
def parser() -> DocumentParser:
    """Create a DocumentParser instance.

    Returns:
        DocumentParser instance.
    """
    return DocumentParser()


@pytest.fixture
def temp_docs_dir(tmp_path: Path) -> Path:
    """Create a temporary docs directory.

    Args:
        tmp_path: Pytest temporary directory fixture.

    Returns:
        Path to temporary docs directory.
    """
    docs_dir = tmp_path / "docs"
    docs_dir.mkdir()
    return docs_dir


def test_parse_nested_markdown_headings(parser: DocumentParser, temp_docs_dir: Path) -> None:
    """Test that heading nesting builds heading paths."""
    file_path = temp_docs_dir / "traffic.md"
    file_path.write_text("""# Traffic Management

Intro to traffic.

## Circuit Breaking

Circuit breaking limits load.

### Outlier Detection

Ejects unhealthy hosts.

## Retries

Retry policy.
""")

    doc = parser.parse_file(file_path, temp_docs_dir)

    assert doc.title == "Traffic Management"
    assert [section.heading_path for section in doc.sections] == [
        ("Traffic Management",),
        ("Traffic Management", "Circuit Breaking"),
        ("Traffic Management", "Circuit Breaking", "Outlier Detection"),
        ("Traffic Management", "Retries"),
    ]
    assert doc.sections[1].text == "Circuit breaking limits load."


def test_document_without_headings_is_one_section(parser: DocumentParser, temp_docs_dir: Path) -> None:
    """Test that a document without headings yields a single untitled section."""
    file_path = temp_docs_dir / "my-notes.md"
    file_path.write_text("Just some content without a heading.\n")

    doc = parser.parse_file(file_path, temp_docs_dir)

    assert len(doc.sections) == 1
    assert doc.sections[0].heading_path == ()
    assert doc.title == "My Notes"


def test_preamble_before_first_heading(parser: DocumentParser, temp_docs_dir: Path) -> None:
    """Test that text before the first heading forms its own section."""
    file_path = temp_docs_dir / "preamble.md"
    file_path.write_text("Preamble text.\n\n# Title\n\nBody.\n")

    doc = parser.parse_file(file_path, temp_docs_dir)

    assert [section.heading_path for section in doc.sections] == [(), ("Title",)]
    assert doc.title == "Title"


def test_headings_inside_code_fences_are_not_split(parser: DocumentParser, temp_docs_dir: Path) -> None:
    """Test that fenced code is kept verbatim inside its section."""
    file_path = temp_docs_dir / "config.md"
    file_path.write_text("# Config\n\n```bash\n# not a heading\necho hi\n```\n")

    doc = parser.parse_file(file_path, temp_docs_dir)

    assert len(doc.sections) == 1
    assert doc.sections[0].heading_path == ("Config",)
    assert "# not a heading" in doc.sections[0].text
    assert doc.sections[0].text.startswith("```bash")


def test_unbalanced_fence_raises(parser: DocumentParser, temp_docs_dir: Path) -> None:
    """Test that an unclosed code fence is reported with its line."""
    file_path = temp_docs_dir / "broken.md"
    file_path.write_text("# T\n\n```\ncode\n")

    with pytest.raises(MalformedDocument) as exc_info:
        parser.parse_file(file_path, temp_docs_dir)

    assert exc_info.value.path == "broken.md"
    assert exc_info.value.line == 3


def test_duplicate_headings_get_unique_paths(parser: DocumentParser, temp_docs_dir: Path) -> None:
    """Test that repeated headings under one parent are disambiguated."""
    file_path = temp_docs_dir / "guide.md"
    file_path.write_text("# Guide\n\n## Examples\n\nfirst\n\n## Examples\n\nsecond\n")

    doc = parser.parse_file(file_path, temp_docs_dir)

    assert [section.heading_path for section in doc.sections] == [
        ("Guide", "Examples"),
        ("Guide", "Examples (2)"),
    ]


def test_setext_headings(parser: DocumentParser, temp_docs_dir: Path) -> None:
    """Test underlined Markdown headings."""
    file_path = temp_docs_dir / "setext.md"
    file_path.write_text("Overview\n========\n\nText here.\n\nDetails\n-------\n\nMore text.\n")

    doc = parser.parse_file(file_path, temp_docs_dir)

    assert [section.heading_path for section in doc.sections] == [("Overview",), ("Overview", "Details")]


def test_heading_only_sections_are_dropped(parser: DocumentParser, temp_docs_dir: Path) -> None:
    """Test that sections without body tokens are not emitted."""
    file_path = temp_docs_dir / "nested.md"
    file_path.write_text("# A\n## B\n\ntext\n")

    doc = parser.parse_file(file_path, temp_docs_dir)

    assert [section.heading_path for section in doc.sections] == [("A", "B")]


def test_heading_markup_is_cleaned(parser: DocumentParser, temp_docs_dir: Path) -> None:
    """Test removal of closing hashes and inline markup from headings."""
    file_path = temp_docs_dir / "security.md"
    file_path.write_text("## `mTLS` [Rotation](rotation.md) ##\n\nBody.\n")

    doc = parser.parse_file(file_path, temp_docs_dir)

    assert doc.sections[0].heading_path == ("mTLS Rotation",)


def test_front_matter_is_skipped(parser: DocumentParser, temp_docs_dir: Path) -> None:
    """Test that YAML front matter is not indexed."""
    file_path = temp_docs_dir / "front.md"
    file_path.write_text("---\ntitle: x\n---\n# Real\n\nBody\n")

    doc = parser.parse_file(file_path, temp_docs_dir)

    assert [section.heading_path for section in doc.sections] == [("Real",)]


def test_relative_path_uses_forward_slashes(parser: DocumentParser, temp_docs_dir: Path) -> None:
    """Test that documents are keyed by their path under the docs root."""
    guides = temp_docs_dir / "guides"
    guides.mkdir()
    file_path = guides / "mesh.md"
    file_path.write_text("# Mesh\n\nContent.\n")

    doc = parser.parse_file(file_path, temp_docs_dir)

    assert doc.path == "guides/mesh.md"


def test_parse_is_deterministic(parser: DocumentParser, temp_docs_dir: Path) -> None:
    """Test that parsing the same file twice gives equal documents."""
    file_path = temp_docs_dir / "same.md"
    file_path.write_text("# A\n\nalpha\n\n## B\n\nbeta\n")

    assert parser.parse_file(file_path, temp_docs_dir) == parser.parse_file(file_path, temp_docs_dir)


def test_parse_invalid_utf8(parser: DocumentParser, temp_docs_dir: Path) -> None:
    """Test that undecodable files raise MalformedDocument."""
    file_path = temp_docs_dir / "invalid.md"
    file_path.write_bytes(b"\xff\xfe")

    with pytest.raises(MalformedDocument, match="not valid UTF-8"):
        parser.parse_file(file_path, temp_docs_dir)


def test_parse_empty_file(parser: DocumentParser, temp_docs_dir: Path) -> None:
    """Test parsing an empty file."""
    file_path = temp_docs_dir / "empty.md"
    file_path.write_text("")

    doc = parser.parse_file(file_path, temp_docs_dir)

    assert doc.sections == ()
    assert doc.title == "Empty"  # Fallback to filename


def test_parse_rst_sections(parser: DocumentParser, temp_docs_dir: Path) -> None:
    """Test that RST section titles build heading paths."""
    file_path = temp_docs_dir / "traffic.rst"
    file_path.write_text("""
Traffic Management
==================

Intro paragraph.

Circuit Breaking
----------------

Limits load.

.. code-block:: yaml

    trafficPolicy:
      connectionPool: {}

Text after code.
""")

    doc = parser.parse_file(file_path, temp_docs_dir)

    assert doc.title == "Traffic Management"
    assert [section.heading_path for section in doc.sections] == [
        ("Traffic Management",),
        ("Traffic Management", "Circuit Breaking"),
    ]
    assert doc.sections[0].text == "Intro paragraph."
    body = doc.sections[1].text
    assert "```\ntrafficPolicy:" in body
    assert "Text after code." in body


def test_parse_rst_roles_and_comments(parser: DocumentParser, temp_docs_dir: Path) -> None:
    """Test that unresolved roles are reduced to their text and comments are dropped."""
    file_path = temp_docs_dir / "roles.rst"
    file_path.write_text("""
Title
=====

.. this comment is not content

See :doc:`other-document` for more information.
""")

    doc = parser.parse_file(file_path, temp_docs_dir)

    text = doc.sections[0].text
    assert ":doc:" not in text
    assert "other-document" in text
    assert "comment" not in text


def test_parse_rst_with_tables(parser: DocumentParser, temp_docs_dir: Path) -> None:
    """Test parsing RST with tables."""
    file_path = temp_docs_dir / "tables.rst"
    file_path.write_text("""
Resources
=========

+----------+-------------+
| Resource | Description |
+==========+=============+
| s3       | S3 buckets  |
+----------+-------------+

Content after table.
""")

    doc = parser.parse_file(file_path, temp_docs_dir)

    text = doc.sections[0].text
    assert "S3 buckets" in text
    assert "Content after table" in text


def test_parse_rst_inconsistent_titles(parser: DocumentParser, temp_docs_dir: Path) -> None:
    """Test that severe RST structure errors raise MalformedDocument."""
    file_path = temp_docs_dir / "broken.rst"
    file_path.write_text("""
Top
===

Body.

Sub
---

Body.

Next
====

Body.

Odd
~~~

Body.
""")

    with pytest.raises(MalformedDocument):
        parser.parse_file(file_path, temp_docs_dir)


def test_parse_rst_fallback_title(parser: DocumentParser, temp_docs_dir: Path) -> None:
    """Test fallback to filename when an RST file has no title."""
    file_path = temp_docs_dir / "my-test-file.rest"
    file_path.write_text("Just some content without a title.\n")

    doc = parser.parse_file(file_path, temp_docs_dir)

    assert doc.title == "My Test File"
    assert doc.sections[0].heading_path == ()


def test_rst_include_directive_is_not_expanded(parser: DocumentParser, tmp_path: Path, temp_docs_dir: Path) -> None:
    """Test that RST files cannot pull other files into the index."""
    secret = tmp_path / "secret.txt"
    secret.write_text("TOPSECRETVALUE\n")
    file_path = temp_docs_dir / "include.rst"
    file_path.write_text(f"Title\n=====\n\nBody.\n\n.. include:: {secret}\n")

    doc = parser.parse_file(file_path, temp_docs_dir)

    assert all("TOPSECRETVALUE" not in section.text for section in doc.sections)
    assert doc.sections[0].text == "Body."


def test_rst_raw_directive_is_not_indexed(parser: DocumentParser, temp_docs_dir: Path) -> None:
    """Test that raw passthrough content is disabled."""
    file_path = temp_docs_dir / "raw.rst"
    file_path.write_text("Title\n=====\n\nBody.\n\n.. raw:: html\n\n   <b>RAWCONTENT</b>\n")

    doc = parser.parse_file(file_path, temp_docs_dir)

    assert all("RAWCONTENT" not in section.text for section in doc.sections)


def test_leading_thematic_break_is_not_front_matter(parser: DocumentParser) -> None:
    """Test that a document opening with a rule keeps the text before the next underline."""
    doc = parser.parse_text("---\n\nIntro paragraph.\n\nTitle\n---\n\nBody text.\n", "rule.md")

    assert [section.heading_path for section in doc.sections] == [(), ("Title",)]
    assert "Intro paragraph." in doc.sections[0].text
    assert doc.sections[1].text == "Body text."


def test_front_matter_requires_yaml_entries(parser: DocumentParser) -> None:
    """Test that only key/value blocks are treated as front matter."""
    doc = parser.parse_text("---\nJust a sentence here\n---\n\nMore text.\n", "rule.md")

    texts = " ".join(section.text for section in doc.sections)
    assert "More text." in texts
    assert [section.heading_path for section in doc.sections] == [("Just a sentence here",)]


def test_front_matter_with_lists_is_skipped(parser: DocumentParser) -> None:
    """Test front matter containing nested values."""
    doc = parser.parse_text("---\ntitle: Mesh\ntags:\n  - istio\n  - mtls\n---\n# Mesh\n\nBody.\n", "mesh.md")

    assert [section.heading_path for section in doc.sections] == [("Mesh",)]
    assert "tags" not in doc.sections[0].text


def test_setext_heading_spanning_lines(parser: DocumentParser) -> None:
    """Test that a wrapped setext heading keeps all of its lines."""
    doc = parser.parse_text("Intro.\n\nTraffic\nManagement\n==========\n\nBody.\n", "wrapped.md")

    assert [section.heading_path for section in doc.sections] == [(), ("Traffic Management",)]
    assert doc.sections[0].text == "Intro."


def test_unreadable_file_raises(parser: DocumentParser, temp_docs_dir: Path) -> None:
    """Test that read errors are reported as MalformedDocument."""
    with pytest.raises(MalformedDocument, match="cannot read file"):
        parser.parse_file(temp_docs_dir / "missing.md", temp_docs_dir)
