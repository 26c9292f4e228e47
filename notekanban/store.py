"""
Note store backend (SQLite).

The board engine only talks to the store through the NoteStore
interface; SQLiteNoteStore is the concrete implementation used by the
CLI and the tests. Both speak the UpdateQuery vocabulary from schema.py.
"""
import logging
import sqlite3
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from .schema import Note, QueryType, UpdateQuery, now_ms

logger = logging.getLogger(__name__)


def new_id() -> str:
    return uuid.uuid4().hex


def _connect(db_path: str) -> sqlite3.Connection:
    """Open a connection with FK enforcement and WAL mode."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


@dataclass
class Notebook:
    id: str
    title: str
    parent_id: str = ""


@dataclass
class ConfigNote:
    id: str
    title: str
    notebook_id: str
    body: str


class NoteStore:
    """Async interface the board engine consumes."""

    async def get_note(self, note_id: str) -> Optional[Note]:
        raise NotImplementedError

    async def get_config_note(self, note_id: str) -> Optional[ConfigNote]:
        raise NotImplementedError

    async def set_config_note(self, note_id: str, body: str) -> None:
        raise NotImplementedError

    async def search_notes(self, root_notebook_id: Optional[str], tags: List[str]) -> List[Note]:
        """Notes under the notebook subtree (None = everywhere) carrying every tag."""
        raise NotImplementedError

    async def get_all_tags(self) -> List[str]:
        raise NotImplementedError

    async def get_all_notebooks(self) -> List[Notebook]:
        raise NotImplementedError

    async def get_notebook_path(self, notebook_id: str) -> str:
        raise NotImplementedError

    async def find_notebook_by_path(self, path: str, create: bool = False) -> Optional[str]:
        raise NotImplementedError

    async def get_or_create_tag(self, title: str) -> str:
        raise NotImplementedError

    async def create_note(self, notebook_id: str = "", title: str = "", body: str = "") -> str:
        raise NotImplementedError

    async def execute_update_query(self, query: UpdateQuery) -> None:
        raise NotImplementedError


# Note fields writable through `put notes/{id}` and their columns
_PUT_COLUMNS: Dict[str, str] = {
    "title": "title",
    "body": "body",
    "notebook_id": "notebook_id",
    "is_todo": "is_todo",
    "is_completed": "is_completed",
    "due": "due",
    "order": "sort_order",
}


class SQLiteNoteStore(NoteStore):
    """SQLite-backed note store."""

    def __init__(self, db_path: str = None):
        """Initialize store and create tables if needed."""
        if db_path is None:
            db_path = str(Path.home() / ".local" / "share" / "notekanban" / "notes.db")
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _init_schema(self):
        """Create tables if they don't exist."""
        with _connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS notebooks (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    parent_id TEXT NOT NULL DEFAULT ''
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS notes (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL DEFAULT '',
                    body TEXT NOT NULL DEFAULT '',
                    notebook_id TEXT NOT NULL DEFAULT '',
                    is_todo INTEGER DEFAULT 0,
                    is_completed INTEGER DEFAULT 0,
                    due INTEGER DEFAULT 0,
                    sort_order INTEGER DEFAULT 0,
                    created_time INTEGER NOT NULL,
                    updated_time INTEGER NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tags (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL UNIQUE COLLATE NOCASE
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS note_tags (
                    note_id TEXT NOT NULL,
                    tag_id TEXT NOT NULL,
                    PRIMARY KEY (note_id, tag_id),
                    FOREIGN KEY (tag_id) REFERENCES tags(id)
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_notes_notebook ON notes(notebook_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_notebooks_parent ON notebooks(parent_id)")
            conn.commit()

    # ── Notes ────────────────────────────────────────────────

    def _tags_for(self, conn: sqlite3.Connection, note_id: str) -> List[str]:
        rows = conn.execute(
            "SELECT t.title FROM tags t JOIN note_tags nt ON nt.tag_id = t.id "
            "WHERE nt.note_id = ? ORDER BY t.title",
            (note_id,)
        ).fetchall()
        return [r["title"] for r in rows]

    def _row_to_note(self, conn: sqlite3.Connection, row: sqlite3.Row) -> Note:
        data = dict(row)
        data["order"] = data.pop("sort_order")
        return Note.from_row(data, self._tags_for(conn, data["id"]))

    async def get_note(self, note_id: str) -> Optional[Note]:
        with _connect(self.db_path) as conn:
            row = conn.execute("SELECT * FROM notes WHERE id = ?", (note_id,)).fetchone()
            if not row:
                return None
            return self._row_to_note(conn, row)

    async def get_config_note(self, note_id: str) -> Optional[ConfigNote]:
        with _connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT id, title, notebook_id, body FROM notes WHERE id = ?",
                (note_id,)
            ).fetchone()
        if not row:
            return None
        return ConfigNote(**dict(row))

    async def set_config_note(self, note_id: str, body: str) -> None:
        with _connect(self.db_path) as conn:
            conn.execute(
                "UPDATE notes SET body = ?, updated_time = ? WHERE id = ?",
                (body, now_ms(), note_id)
            )
            conn.commit()

    async def create_note(self, notebook_id: str = "", title: str = "", body: str = "") -> str:
        note_id = new_id()
        now = now_ms()
        with _connect(self.db_path) as conn:
            conn.execute(
                "INSERT INTO notes (id, title, body, notebook_id, created_time, updated_time) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (note_id, title, body, notebook_id, now, now)
            )
            conn.commit()
        logger.debug(f"Created note {note_id} in notebook {notebook_id or '(root)'}")
        return note_id

    async def search_notes(self, root_notebook_id: Optional[str], tags: List[str]) -> List[Note]:
        with _connect(self.db_path) as conn:
            if root_notebook_id:
                rows = conn.execute("""
                    WITH RECURSIVE tree(id) AS (
                        SELECT ?
                        UNION
                        SELECT nb.id FROM notebooks nb JOIN tree ON nb.parent_id = tree.id
                    )
                    SELECT * FROM notes WHERE notebook_id IN (SELECT id FROM tree)
                """, (root_notebook_id,)).fetchall()
            else:
                rows = conn.execute("SELECT * FROM notes").fetchall()
            notes = [self._row_to_note(conn, r) for r in rows]

        wanted = {t.lower() for t in tags}
        if not wanted:
            return notes
        return [n for n in notes if wanted <= {t.lower() for t in n.tags}]

    async def execute_update_query(self, query: UpdateQuery) -> None:
        path = query.path
        with _connect(self.db_path) as conn:
            if query.type == QueryType.PUT and len(path) == 2 and path[0] == "notes":
                body = query.body or {}
                columns = [(_PUT_COLUMNS[k], v) for k, v in body.items() if k in _PUT_COLUMNS]
                ignored = set(body) - set(_PUT_COLUMNS)
                if ignored:
                    logger.debug(f"Ignoring unknown note fields {sorted(ignored)}")
                if columns:
                    assignments = ", ".join(f"{col} = ?" for col, _ in columns)
                    conn.execute(
                        f"UPDATE notes SET {assignments}, updated_time = ? WHERE id = ?",
                        [v for _, v in columns] + [now_ms(), path[1]]
                    )
            elif query.type == QueryType.POST and len(path) == 3 and path[0] == "tags" and path[2] == "notes":
                conn.execute(
                    "INSERT OR IGNORE INTO note_tags (note_id, tag_id) VALUES (?, ?)",
                    ((query.body or {})["id"], path[1])
                )
            elif query.type == QueryType.DELETE and len(path) == 4 and path[0] == "tags" and path[2] == "notes":
                conn.execute(
                    "DELETE FROM note_tags WHERE note_id = ? AND tag_id = ?",
                    (path[3], path[1])
                )
            else:
                raise ValueError(f"Unsupported update query: {query.type} {'/'.join(path)}")
            conn.commit()
        logger.debug(f"Applied {query.type} {'/'.join(path)}")

    # ── Tags ─────────────────────────────────────────────────

    async def get_all_tags(self) -> List[str]:
        with _connect(self.db_path) as conn:
            rows = conn.execute("SELECT title FROM tags ORDER BY title").fetchall()
        return [r["title"] for r in rows]

    async def get_or_create_tag(self, title: str) -> str:
        with _connect(self.db_path) as conn:
            row = conn.execute("SELECT id FROM tags WHERE title = ?", (title,)).fetchone()
            if row:
                return row["id"]
            tag_id = new_id()
            conn.execute("INSERT INTO tags (id, title) VALUES (?, ?)", (tag_id, title))
            conn.commit()
        logger.info(f"Created tag '{title}'")
        return tag_id

    # ── Notebooks ────────────────────────────────────────────

    async def get_all_notebooks(self) -> List[Notebook]:
        with _connect(self.db_path) as conn:
            rows = conn.execute("SELECT id, title, parent_id FROM notebooks ORDER BY title").fetchall()
        return [Notebook(**dict(r)) for r in rows]

    async def create_notebook(self, title: str, parent_id: str = "") -> str:
        notebook_id = new_id()
        with _connect(self.db_path) as conn:
            conn.execute(
                "INSERT INTO notebooks (id, title, parent_id) VALUES (?, ?, ?)",
                (notebook_id, title, parent_id)
            )
            conn.commit()
        return notebook_id

    async def get_notebook_path(self, notebook_id: str) -> str:
        """Return "/A/B" for a notebook id, "/" for the top level."""
        parts: List[str] = []
        with _connect(self.db_path) as conn:
            current = notebook_id
            seen = set()
            while current and current not in seen:
                seen.add(current)
                row = conn.execute(
                    "SELECT title, parent_id FROM notebooks WHERE id = ?", (current,)
                ).fetchone()
                if not row:
                    break
                parts.append(row["title"])
                current = row["parent_id"]
        return "/" + "/".join(reversed(parts))

    async def find_notebook_by_path(self, path: str, create: bool = False) -> Optional[str]:
        """Resolve "/A/B" to a notebook id ("" for "/"), creating missing parts if asked."""
        parent_id = ""
        for title in [p for p in path.split("/") if p]:
            with _connect(self.db_path) as conn:
                row = conn.execute(
                    "SELECT id FROM notebooks WHERE title = ? AND parent_id = ?",
                    (title, parent_id)
                ).fetchone()
            if row:
                parent_id = row["id"]
            elif create:
                parent_id = await self.create_notebook(title, parent_id)
                logger.info(f"Created notebook '{title}'")
            else:
                return None
        return parent_id
