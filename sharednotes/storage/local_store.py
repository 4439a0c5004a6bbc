"""Local SQLite storage for notes with change notification."""

import logging
import sqlite3
from datetime import datetime
from pathlib import Path

from ..errors import LocalStoreError
from ..live import LiveValue
from ..models import Note

logger = logging.getLogger(__name__)

# SQL schema for the notes database
SCHEMA = """
CREATE TABLE IF NOT EXISTS notes (
    title TEXT PRIMARY KEY,
    content TEXT NOT NULL,
    version INTEGER NOT NULL CHECK (version >= 0),
    updated_at TEXT NOT NULL
);
"""


class NoteStore:
    """SQLite-backed note cache keyed by title.

    Every mutation re-publishes the affected per-title LiveValue and the
    all-notes LiveValue, so subscribers see local writes immediately.
    """

    def __init__(self, db_path: str | Path):
        """Initialize the note store.

        Args:
            db_path: Path to SQLite database file, or ":memory:".
        """
        self.db_path = Path(db_path).expanduser()
        self._conn: sqlite3.Connection | None = None
        self._live: dict[str, LiveValue] = {}
        self._all: LiveValue | None = None

    def connect(self) -> None:
        """Initialize database connection and schema."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(SCHEMA)
            self._conn.commit()
        except (OSError, sqlite3.Error) as e:
            raise LocalStoreError(f"Cannot open note store at {self.db_path}: {e}") from e

        logger.info(f"NoteStore connected to {self.db_path}")

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def _ensure_connected(self) -> sqlite3.Connection:
        """Ensure database connection exists."""
        if self._conn is None:
            self.connect()
        return self._conn

    # Queries

    def find(self, title: str) -> Note | None:
        """Read the current note for a title, or None if absent."""
        conn = self._ensure_connected()
        try:
            row = conn.execute(
                "SELECT title, content, version FROM notes WHERE title = ?",
                (title,),
            ).fetchone()
        except sqlite3.Error as e:
            raise LocalStoreError(f"Failed to read note {title!r}: {e}") from e

        if row is None:
            return None
        return Note(title=row["title"], content=row["content"], version=row["version"])

    def list_notes(self) -> list[Note]:
        """Read every note, ordered by title."""
        conn = self._ensure_connected()
        try:
            rows = conn.execute(
                "SELECT title, content, version FROM notes ORDER BY title"
            ).fetchall()
        except sqlite3.Error as e:
            raise LocalStoreError(f"Failed to list notes: {e}") from e

        return [
            Note(title=row["title"], content=row["content"], version=row["version"])
            for row in rows
        ]

    def exists(self, title: str) -> bool:
        conn = self._ensure_connected()
        try:
            row = conn.execute(
                "SELECT 1 FROM notes WHERE title = ?", (title,)
            ).fetchone()
        except sqlite3.Error as e:
            raise LocalStoreError(f"Failed to check note {title!r}: {e}") from e
        return row is not None

    # Observables

    def get(self, title: str) -> LiveValue:
        """Observable of the note for a title (None while absent).

        Repeated calls with one title share a LiveValue. It is dropped from
        the cache once its last subscriber detaches, and a later call
        builds a fresh one from the database.
        """
        live = self._live.get(title)
        if live is None:
            live = LiveValue(
                name=f"note:{title}",
                value=self.find(title),
                on_idle=lambda: self._release(title, live),
            )
            self._live[title] = live
        return live

    def _release(self, title: str, live: LiveValue) -> None:
        if self._live.get(title) is live:
            del self._live[title]

    def get_all(self) -> LiveValue:
        """Observable of every note, re-published on any mutation."""
        if self._all is None:
            self._all = LiveValue(name="notes", value=self.list_notes())
        return self._all

    # Mutations

    def upsert(self, note: Note) -> None:
        """Insert or replace a note exactly as given."""
        conn = self._ensure_connected()
        try:
            conn.execute(
                """
                INSERT INTO notes (title, content, version, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(title) DO UPDATE SET
                    content = excluded.content,
                    version = excluded.version,
                    updated_at = excluded.updated_at
                """,
                (note.title, note.content, note.version, datetime.now().isoformat()),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise LocalStoreError(f"Failed to upsert note {note.title!r}: {e}") from e

        logger.debug(f"Upserted note {note.title!r} at version {note.version}")
        self._notify(note.title)

    def delete(self, note: Note) -> None:
        """Delete the note with this note's title, if present."""
        conn = self._ensure_connected()
        try:
            cursor = conn.execute("DELETE FROM notes WHERE title = ?", (note.title,))
            conn.commit()
        except sqlite3.Error as e:
            raise LocalStoreError(f"Failed to delete note {note.title!r}: {e}") from e

        if cursor.rowcount:
            logger.debug(f"Deleted note {note.title!r}")
            self._notify(note.title)

    def _notify(self, title: str) -> None:
        live = self._live.get(title)
        if live is not None:
            live.publish(self.find(title))
        if self._all is not None:
            self._all.publish(self.list_notes())
