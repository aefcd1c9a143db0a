"""Parsers that split Markdown and RST documentation files into sections."""

import re
from pathlib import Path

import docutils.frontend  # type: ignore[import-untyped]
import docutils.nodes  # type: ignore[import-untyped]
import docutils.parsers.rst  # type: ignore[import-untyped]
import docutils.utils  # type: ignore[import-untyped]

from refdocs_index.exceptions import MalformedDocument
from refdocs_index.models import ParsedDocument, ParsedSection
from refdocs_index.tokenizer import FenceTracker, tokenize

ATX_HEADING = re.compile(r"^ {0,3}(#{1,6})(?:[ \t]+(.*?))?(?:[ \t]+#+)?[ \t]*$")
SETEXT_UNDERLINE = re.compile(r"^ {0,3}(=+|-+)[ \t]*$")
FRONT_MATTER_KEY = re.compile(r"^[\w\"'][\w .\"'-]*:(\s|$)")
RST_SUFFIXES = frozenset({".rst", ".rest"})


class SectionCollector:
    """Accumulates section bodies and keeps heading paths unique."""

    def __init__(self) -> None:
        self.sections: list[ParsedSection] = []
        self.title: str | None = None
        self._seen_paths: set[tuple[str, ...]] = set()

    def unique_path(self, parent: tuple[str, ...], title: str) -> tuple[str, ...]:
        """Return the heading path for a new heading under parent.

        Repeated headings under the same parent get a numeric suffix, so
        ``Examples`` twice becomes ``Examples`` and ``Examples (2)``.

        Args:
            parent: Heading path of the enclosing section.
            title: Heading text.

        Returns:
            A heading path not used before in this document.
        """
        if self.title is None:
            self.title = title
        path = (*parent, title)
        counter = 2
        while path in self._seen_paths:
            path = (*parent, f"{title} ({counter})")
            counter += 1
        self._seen_paths.add(path)
        return path

    def add(self, heading_path: tuple[str, ...], body: str) -> None:
        """Record a section if its body has any tokens."""
        text = body.strip("\n")
        if tokenize(text).count() > 0:
            self.sections.append(ParsedSection(heading_path=heading_path, text=text))


class MarkdownSegmenter:
    """Splits Markdown text on ATX and setext headings outside code fences."""

    def segment(self, source: str, path: str) -> tuple[str | None, list[ParsedSection]]:
        """Split Markdown source into sections.

        Args:
            source: Markdown text.
            path: Document path, used in error messages.

        Returns:
            Tuple of the first heading (or None) and the sections in order.

        Raises:
            MalformedDocument: If a code fence is never closed.
        """
        collector = SectionCollector()
        fence = FenceTracker()
        stack: list[tuple[int, tuple[str, ...]]] = []
        current: tuple[str, ...] = ()
        body: list[str] = []
        in_paragraph = False
        paragraph_start = 0

        def open_heading(level: int, title: str) -> None:
            nonlocal current
            collector.add(current, "\n".join(body))
            body.clear()
            while stack and stack[-1][0] >= level:
                stack.pop()
            parent = stack[-1][1] if stack else ()
            current = collector.unique_path(parent, self._clean_heading(title))
            stack.append((level, current))

        lines = source.splitlines()
        start = self._front_matter_end(lines)
        for line_number, line in enumerate(lines[start:], start=start + 1):
            if fence.feed(line, line_number) or fence.in_code:
                body.append(line)
                in_paragraph = False
                continue

            atx = ATX_HEADING.match(line)
            if atx:
                open_heading(len(atx.group(1)), atx.group(2) or "")
                in_paragraph = False
                continue

            setext = SETEXT_UNDERLINE.match(line)
            if setext and in_paragraph:
                # The whole preceding paragraph is the heading text
                title = " ".join(part.strip() for part in body[paragraph_start:])
                del body[paragraph_start:]
                open_heading(1 if setext.group(1)[0] == "=" else 2, title)
                in_paragraph = False
                continue

            if setext:
                # Thematic break
                body.append(line)
                in_paragraph = False
                continue

            if line.strip() and not in_paragraph:
                paragraph_start = len(body)
            body.append(line)
            in_paragraph = bool(line.strip())

        if fence.in_code:
            raise MalformedDocument(path, "unclosed code fence", fence.opened_at)

        collector.add(current, "\n".join(body))
        return collector.title, collector.sections

    @staticmethod
    def _front_matter_end(lines: list[str]) -> int:
        """Return the index of the first line after a YAML front matter block.

        A leading ``---`` only opens front matter when the next line is a
        ``key: value`` entry and every line up to the closing delimiter is
        YAML-shaped; otherwise it is a thematic break and nothing is skipped.
        """
        if len(lines) < 2 or lines[0].strip() != "---" or not FRONT_MATTER_KEY.match(lines[1]):
            return 0
        for index in range(2, len(lines)):
            line = lines[index]
            if line.strip() in ("---", "..."):
                return index + 1
            if line.strip() and not (FRONT_MATTER_KEY.match(line) or line[0] in " \t-#"):
                return 0
        return 0

    def _clean_heading(self, title: str) -> str:
        """Remove inline Markdown markup from a heading.

        Args:
            title: Raw heading text.

        Returns:
            Heading text suitable for display and boosting.
        """
        # Links ([text](url) -> text)
        title = re.sub(r"\[([^\]]*)\]\([^)]*\)", r"\1", title)
        # Emphasis and inline code markers
        title = re.sub(r"[`*]", "", title)
        title = re.sub(r"\s+", " ", title)
        return title.strip()


class SectionTextVisitor(docutils.nodes.GenericNodeVisitor):  # type: ignore[misc]
    """Visitor to collect the body text of one RST section."""

    def __init__(self, document: docutils.nodes.document) -> None:
        """Initialise section text visitor.

        Args:
            document: Docutils document tree.
        """
        super().__init__(document)
        self._parts: list[str] = []

    def visit_paragraph(self, node: docutils.nodes.paragraph) -> None:
        """Collect a paragraph as a single block.

        Args:
            node: Paragraph node.

        Raises:
            docutils.nodes.SkipNode: Always raised, the paragraph text is already collected.
        """
        self._parts.append(node.astext())
        raise docutils.nodes.SkipNode

    def visit_literal_block(self, node: docutils.nodes.literal_block) -> None:
        """Keep code blocks verbatim inside a Markdown fence.

        Args:
            node: Literal block node.

        Raises:
            docutils.nodes.SkipNode: Always raised after collecting the block.
        """
        self._parts.append(f"```\n{node.astext()}\n```")
        raise docutils.nodes.SkipNode

    def visit_comment(self, node: docutils.nodes.comment) -> None:
        """Skip comments.

        Raises:
            docutils.nodes.SkipNode: Always raised to skip comments.
        """
        raise docutils.nodes.SkipNode

    def visit_system_message(self, node: docutils.nodes.system_message) -> None:
        """Skip parser diagnostics embedded in the tree.

        Raises:
            docutils.nodes.SkipNode: Always raised to skip diagnostics.
        """
        raise docutils.nodes.SkipNode

    def visit_Text(self, node: docutils.nodes.Text) -> None:  # noqa: N802
        """Collect stray text outside paragraphs (tables, definitions).

        Args:
            node: Text node.
        """
        text = node.astext().strip()
        if text:
            self._parts.append(text)

    def default_visit(self, node: docutils.nodes.Node) -> None:
        """Default visit handler (no-op)."""

    def default_departure(self, node: docutils.nodes.Node) -> None:
        """Default departure handler (no-op)."""

    def get_text(self) -> str:
        """Get collected text, one block per paragraph.

        Returns:
            Section body text.
        """
        return "\n\n".join(self._parts)


class RstSegmenter:
    """Splits RST documents into sections using the docutils section tree."""

    def segment(self, source: str, path: str) -> tuple[str | None, list[ParsedSection]]:
        """Split RST source into sections.

        Args:
            source: RST text.
            path: Document path, used in error messages.

        Returns:
            Tuple of the first section title (or None) and the sections in order.

        Raises:
            MalformedDocument: If docutils reports a severe error.
        """
        try:
            doctree = self._parse_rst(source, path)
        except docutils.utils.SystemMessage as exc:
            raise MalformedDocument(path, str(exc)) from exc

        collector = SectionCollector()
        self._collect(doctree, doctree, (), collector)
        return collector.title, collector.sections

    def _parse_rst(self, source: str, path: str) -> docutils.nodes.document:
        """Parse RST source into a docutils document tree.

        Args:
            source: RST source text.
            path: Path to the file (for error reporting).

        Returns:
            Docutils document tree.
        """
        parser = docutils.parsers.rst.Parser()
        settings = docutils.frontend.get_default_settings(docutils.parsers.rst.Parser)
        settings.report_level = 5  # Suppress warnings
        settings.halt_level = 4  # Severe errors abort the parse
        settings.doctitle_xform = False  # Keep the top-level title as a section
        settings.syntax_highlight = "none"
        settings.file_insertion_enabled = False  # No include directives or remote raw content
        settings.raw_enabled = False
        document = docutils.utils.new_document(path, settings)
        parser.parse(source, document)
        return document

    def _collect(
        self,
        doctree: docutils.nodes.document,
        node: docutils.nodes.Element,
        heading_path: tuple[str, ...],
        collector: SectionCollector,
    ) -> None:
        visitor = SectionTextVisitor(doctree)
        subsections = []
        for child in node.children:
            if isinstance(child, docutils.nodes.section):
                subsections.append(child)
            elif not isinstance(child, docutils.nodes.title):
                child.walk(visitor)
        collector.add(heading_path, self._clean_content(visitor.get_text()))

        for section in subsections:
            title_node = section.next_node(docutils.nodes.title)
            title = title_node.astext().strip() if title_node is not None else ""
            self._collect(doctree, section, collector.unique_path(heading_path, title), collector)

    def _clean_content(self, content: str) -> str:
        """Clean leftover RST markup from section text.

        Args:
            content: Raw section text.

        Returns:
            Text with unresolved roles reduced to their content.
        """
        # Clean RST roles (:role:`text` -> text)
        return re.sub(r":[\w-]+:`([^`]+)`", r"\1", content)


class DocumentParser:
    """Parses Markdown and RST documentation files into sections."""

    def __init__(self) -> None:
        self.markdown = MarkdownSegmenter()
        self.rst = RstSegmenter()

    def parse_file(self, file_path: Path, base_path: Path) -> ParsedDocument:
        """Read and segment a documentation file.

        Args:
            file_path: Path to the source file.
            base_path: Root of the documentation tree.

        Returns:
            ParsedDocument keyed by the path relative to base_path.

        Raises:
            MalformedDocument: If the file is not UTF-8 or cannot be segmented.
        """
        relative_path = file_path.relative_to(base_path).as_posix()
        try:
            source = file_path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedDocument(relative_path, "file is not valid UTF-8") from exc
        except OSError as exc:
            raise MalformedDocument(relative_path, f"cannot read file: {exc.strerror or exc}") from exc
        return self.parse_text(source, relative_path)

    def parse_text(self, source: str, path: str) -> ParsedDocument:
        """Segment documentation text.

        Args:
            source: File contents.
            path: Document path; its suffix selects the segmenter.

        Returns:
            ParsedDocument with sections in document order.
        """
        segmenter = self.rst if Path(path).suffix.lower() in RST_SUFFIXES else self.markdown
        title, sections = segmenter.segment(source, path)
        if not title:
            # Fallback to filename if no heading found
            title = Path(path).stem.replace("-", " ").replace("_", " ").title()
        return ParsedDocument(path=path, title=title, sections=tuple(sections))
