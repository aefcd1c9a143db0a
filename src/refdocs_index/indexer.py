"""Indexer that builds section indexes from documentation trees."""

import logging
import subprocess
import tempfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from refdocs_index.config import Settings, get_settings
from refdocs_index.exceptions import MalformedDocument
from refdocs_index.index import Index, build_index
from refdocs_index.models import ParsedDocument
from refdocs_index.parser import DocumentParser

logger = logging.getLogger(__name__)


@dataclass
class BuildReport:
    """Outcome of a build: the new index and the documents that were skipped."""

    index: Index
    failures: list[MalformedDocument] = field(default_factory=list)

    @property
    def document_count(self) -> int:
        return len(self.index.documents)


class DocsIndexer:
    """Builds an index from a local documentation tree or a git repository."""

    def __init__(self, settings: Settings | None = None) -> None:
        """Initialise indexer.

        Args:
            settings: Settings to use; the global settings when omitted.
        """
        self.settings = settings or get_settings()
        self.parser = DocumentParser()

    def index_from_git(
        self,
        repo_url: str,
        branch: str = "main",
        docs_path: str = "docs",
        shallow: bool = True,
        strict: bool = False,
    ) -> BuildReport:
        """Clone a repository and index its documentation directory.

        Args:
            repo_url: Git URL of the repository.
            branch: Git branch to clone.
            docs_path: Documentation directory inside the repository.
            shallow: Whether to do a shallow sparse clone.
            strict: Abort on the first malformed document.

        Returns:
            BuildReport for the cloned documentation.
        """
        with tempfile.TemporaryDirectory() as temp_dir:
            repo_path = Path(temp_dir) / "repo"
            self._clone_repository(repo_url, repo_path, branch, docs_path, shallow)
            return self.index_from_path(repo_path / docs_path, strict=strict)

    def index_from_path(self, docs_path: Path, strict: bool = False) -> BuildReport:
        """Index documentation from a local path.

        Args:
            docs_path: Path to the documentation directory.
            strict: Abort on the first malformed document instead of skipping it.

        Returns:
            BuildReport with the new index and skipped documents.

        Raises:
            ValueError: If the documentation path does not exist.
            MalformedDocument: In strict mode, for the first malformed document.
        """
        if not docs_path.is_dir():
            msg = f"Documentation path does not exist: {docs_path}"
            raise ValueError(msg)

        files = self._discover_files(docs_path)
        logger.info("Found %d documentation files to index", len(files))

        documents: list[ParsedDocument] = []
        failures: list[MalformedDocument] = []
        with ThreadPoolExecutor(max_workers=self.settings.build_workers) as executor:
            futures = [executor.submit(self.parser.parse_file, file_path, docs_path) for file_path in files]
            for future in futures:
                try:
                    document = future.result()
                except MalformedDocument as exc:
                    if strict:
                        for pending in futures:
                            pending.cancel()
                        raise
                    logger.warning("Skipping malformed document %s", exc)
                    failures.append(exc)
                    continue
                documents.append(document)
                logger.debug("Parsed: %s (%d sections)", document.path, len(document.sections))

        index = build_index(documents, stem=self.settings.stem_tokens)
        logger.info("Successfully indexed %d documents, skipped %d", len(documents), len(failures))
        return BuildReport(index=index, failures=failures)

    def _discover_files(self, docs_path: Path) -> list[Path]:
        found: set[Path] = set()
        for pattern in self.settings.file_patterns:
            found.update(path for path in docs_path.rglob(pattern) if path.is_file())
        return sorted(found, key=lambda path: path.relative_to(docs_path).as_posix())

    def _clone_repository(
        self,
        repo_url: str,
        target_path: Path,
        branch: str,
        docs_path: str,
        shallow: bool,
    ) -> None:
        """Clone a documentation repository.

        Args:
            repo_url: Git URL of the repository.
            target_path: Directory to clone into.
            branch: Git branch to clone.
            docs_path: Directory to check out when cloning sparsely.
            shallow: Whether to do a shallow clone.
        """
        cmd = ["git", "clone"]
        if shallow:
            cmd.extend(["--depth", "1", "--filter=blob:none", "--sparse"])
        cmd.extend(["--branch", branch, repo_url, str(target_path)])

        logger.info("Cloning %s (%s)...", repo_url, branch)
        subprocess.run(cmd, check=True, capture_output=True)  # noqa: S603

        # For sparse checkout, specify only the docs directory
        if shallow:
            logger.info("Setting up sparse checkout for %s...", docs_path)
            subprocess.run(  # noqa: S603
                ["git", "-C", str(target_path), "sparse-checkout", "set", docs_path],  # noqa: S607
                check=True,
                capture_output=True,
            )

        logger.info("Repository cloned successfully")
