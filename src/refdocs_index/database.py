"""SQLite snapshot storage for documentation indexes."""

import json
import logging
import os
import sqlite3
import tempfile
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from refdocs_index.index import Index
from refdocs_index.models import Document, Posting, Section

logger = logging.getLogger(__name__)

FORMAT_VERSION = "1"

SCHEMA = """
    CREATE TABLE metadata (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    );

    CREATE TABLE documents (
        id INTEGER PRIMARY KEY,
        path TEXT UNIQUE NOT NULL,
        title TEXT NOT NULL
    );

    CREATE TABLE sections (
        id INTEGER PRIMARY KEY,
        document_id INTEGER NOT NULL REFERENCES documents(id),
        heading_path TEXT NOT NULL,
        text TEXT NOT NULL,
        token_count INTEGER NOT NULL CHECK (token_count >= 0)
    );

    CREATE TABLE postings (
        term TEXT NOT NULL,
        section_id INTEGER NOT NULL REFERENCES sections(id),
        frequency INTEGER NOT NULL,
        PRIMARY KEY (term, section_id)
    );
"""


class IndexDatabase:
    """Saves and loads index snapshots as SQLite files."""

    def __init__(self, db_path: Path) -> None:
        """Initialise database with the given path.

        Args:
            db_path: Path to the SQLite snapshot file.
        """
        self.db_path = Path(db_path)

    @staticmethod
    @contextmanager
    def _get_connection(path: Path) -> Generator[sqlite3.Connection, None, None]:
        """Context manager for database connections.

        Yields:
            SQLite connection with Row factory enabled.
        """
        conn = sqlite3.connect(path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def save(self, index: Index) -> None:
        """Write an index snapshot, replacing any existing file atomically.

        The snapshot is written to a temporary file in the target directory
        and moved into place once complete.

        Args:
            index: Index to persist.
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(prefix=f".{self.db_path.name}.", suffix=".tmp", dir=self.db_path.parent)
        os.close(fd)
        temp_path = Path(temp_name)
        try:
            with self._get_connection(temp_path) as conn:
                conn.executescript(SCHEMA)
                self._write(conn, index)
                conn.commit()
            os.replace(temp_path, self.db_path)
        except BaseException:
            temp_path.unlink(missing_ok=True)
            raise
        logger.info("Saved index snapshot to %s (%d sections)", self.db_path, index.total_sections)

    def _write(self, conn: sqlite3.Connection, index: Index) -> None:
        conn.executemany(
            "INSERT INTO metadata (key, value) VALUES (?, ?)",
            [("format_version", FORMAT_VERSION), ("stem", "1" if index.stem else "0")],
        )
        document_ids = {}
        for document_id, document in enumerate(index.documents):
            document_ids[document.path] = document_id
            conn.execute(
                "INSERT INTO documents (id, path, title) VALUES (?, ?, ?)",
                (document_id, document.path, document.title),
            )
        conn.executemany(
            "INSERT INTO sections (id, document_id, heading_path, text, token_count) VALUES (?, ?, ?, ?, ?)",
            [
                (
                    section.id,
                    document_ids[section.path],
                    json.dumps(list(section.heading_path)),
                    section.text,
                    section.token_count,
                )
                for section in index.sections
            ],
        )
        conn.executemany(
            "INSERT INTO postings (term, section_id, frequency) VALUES (?, ?, ?)",
            [
                (term, posting.section_id, posting.frequency)
                for term, postings in index.postings.items()
                for posting in postings
            ],
        )

    def load(self) -> Index:
        """Read an index snapshot.

        Returns:
            Index equivalent to the one that was saved.

        Raises:
            FileNotFoundError: If the snapshot file does not exist.
            ValueError: If the file is not an index snapshot of a known format.
        """
        if not self.db_path.is_file():
            msg = f"Index snapshot does not exist: {self.db_path}"
            raise FileNotFoundError(msg)

        try:
            with self._get_connection(self.db_path) as conn:
                metadata = {row["key"]: row["value"] for row in conn.execute("SELECT key, value FROM metadata")}
                if metadata.get("format_version") != FORMAT_VERSION:
                    msg = f"Unsupported index format: {metadata.get('format_version')!r}"
                    raise ValueError(msg)
                index = self._read(conn, stem=metadata.get("stem") == "1")
        except sqlite3.DatabaseError as exc:
            msg = f"Not an index snapshot: {self.db_path}"
            raise ValueError(msg) from exc

        logger.info("Loaded index snapshot from %s (%d sections)", self.db_path, index.total_sections)
        return index

    def _read(self, conn: sqlite3.Connection, stem: bool) -> Index:
        paths = {}
        section_ids: dict[int, list[int]] = {}
        titles = {}
        for row in conn.execute("SELECT id, path, title FROM documents ORDER BY id"):
            paths[row["id"]] = row["path"]
            titles[row["id"]] = row["title"]
            section_ids[row["id"]] = []

        sections = []
        for row in conn.execute("SELECT id, document_id, heading_path, text, token_count FROM sections ORDER BY id"):
            section_ids[row["document_id"]].append(row["id"])
            sections.append(
                Section(
                    id=row["id"],
                    path=paths[row["document_id"]],
                    heading_path=tuple(json.loads(row["heading_path"])),
                    text=row["text"],
                    token_count=row["token_count"],
                )
            )

        postings: dict[str, list[Posting]] = {}
        for row in conn.execute("SELECT term, section_id, frequency FROM postings ORDER BY term, section_id"):
            postings.setdefault(row["term"], []).append(
                Posting(section_id=row["section_id"], frequency=row["frequency"])
            )

        documents = tuple(
            Document(path=paths[doc_id], title=titles[doc_id], section_ids=tuple(section_ids[doc_id]))
            for doc_id in sorted(paths)
        )
        return Index(
            documents=documents,
            sections=tuple(sections),
            postings={term: tuple(entries) for term, entries in postings.items()},
            stem=stem,
        )
