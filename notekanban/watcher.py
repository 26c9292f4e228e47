"""
Database change watcher.

The note database is written by other processes, so the only change
signal is the filesystem. Writes to the database file (or its WAL and
shared-memory siblings) are handed to the asyncio loop, where they are
checked against the database's data version before the controller's
refresh debouncer collapses the burst into one redraw.

The version check matters because refreshing reads the database, and
SQLite touches the WAL file when a reading connection closes. Without
it every refresh would trigger the next one.
"""
import asyncio
import logging
import sqlite3
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)

SQLITE_SUFFIXES = ("", "-wal", "-shm", "-journal")


class DatabaseVersion:
    """
    Tracks `PRAGMA data_version` on one long-lived connection.

    The value only moves when another connection commits, so checkpoints
    and read-only connections leave it unchanged. Keeping this connection
    open also stops SQLite from checkpointing the WAL each time a short
    store connection closes.
    """

    def __init__(self, db_path: str):
        self.conn = sqlite3.connect(db_path)
        self.last = self.read()

    def read(self) -> int:
        return self.conn.execute("PRAGMA data_version").fetchone()[0]

    def changed(self) -> bool:
        current = self.read()
        if current == self.last:
            return False
        self.last = current
        return True

    def close(self):
        self.conn.close()


class DatabaseChangeHandler(FileSystemEventHandler):
    """Forwards changes to one SQLite database onto an asyncio loop."""

    def __init__(self, db_path: str, loop: asyncio.AbstractEventLoop, on_change: Callable[[], object],
                 version: Optional[DatabaseVersion] = None):
        self.db_path = Path(db_path).resolve()
        self.loop = loop
        self.on_change = on_change
        self.version = version
        self.watched_names = {self.db_path.name + suffix for suffix in SQLITE_SUFFIXES}

    def on_any_event(self, fs_event):
        if fs_event.is_directory:
            return
        paths = [fs_event.src_path, getattr(fs_event, "dest_path", "")]
        if not any(p and Path(p).name in self.watched_names for p in paths):
            return
        logger.debug(f"Database file event: {fs_event.event_type} {fs_event.src_path}")
        # Called from the observer thread
        self.loop.call_soon_threadsafe(self.dispatch)

    def dispatch(self):
        """Runs on the loop; calls on_change only when the content moved."""
        if self.version is not None and not self.version.changed():
            return
        logger.debug(f"Database changed: {self.db_path}")
        self.on_change()


def watch_database(db_path: str, loop: asyncio.AbstractEventLoop, on_change: Callable[[], object],
                   version: Optional[DatabaseVersion] = None) -> Observer:
    """
    Start an observer on the database's directory.

    The caller stops and joins the observer, and closes `version` if it
    passed one. Without one, a version tracker is opened here and lives
    as long as the handler.
    """
    if version is None:
        version = DatabaseVersion(db_path)
    handler = DatabaseChangeHandler(db_path, loop, on_change, version)
    observer = Observer()
    observer.schedule(handler, str(handler.db_path.parent), recursive=False)
    observer.start()
    logger.info(f"Watching {handler.db_path} for changes")
    return observer
