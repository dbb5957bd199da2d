"""
Live SQLite Store Handle.

Owns the application's single connection to chat.db. The restore engine
closes it before replacing or bulk-importing the file and reopens it after.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path

from core.interfaces import DatabaseHandleInterface
from utils.db_import import open_database

logger = logging.getLogger(__name__)


class SQLiteStore(DatabaseHandleInterface):
    """
    Holds exactly one live connection at a time.

    Args:
        db_path: Path to chat.db
        cipher_key: Optional key; requires a SQLCipher-enabled build
    """

    def __init__(self, db_path: str | Path, cipher_key: str | None = None):
        self.db_path = Path(db_path)
        self.cipher_key = cipher_key
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()
        self.reopen()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def get_connection(self) -> sqlite3.Connection:
        """Returns the live connection; raises if the store is closed."""
        if self._conn is None:
            raise RuntimeError("Database connection is closed")
        return self._conn

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            try:
                self._conn.commit()
            finally:
                self._conn.close()
                self._conn = None
            logger.info(f"Closed database connection: {self.db_path}")

    def reopen(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = open_database(self.db_path, self.cipher_key)
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.execute("PRAGMA foreign_keys=ON;")
            conn.row_factory = sqlite3.Row
            self._conn = conn
            logger.debug(f"Opened database connection: {self.db_path}")

    def checkpoint(self) -> None:
        """Moves every committed WAL frame into chat.db and truncates the WAL."""
        with self._lock:
            if self._conn is None:
                return
            self._conn.commit()
            busy, _, _ = self._conn.execute(
                "PRAGMA wal_checkpoint(TRUNCATE);"
            ).fetchone()
        if busy:
            logger.warning(f"WAL checkpoint incomplete, database busy: {self.db_path}")


@contextmanager
def closed_for_restore(handle: DatabaseHandleInterface):
    """Context manager that closes the store and guarantees it is reopened.

    The reopen runs on every exit path, including when the body raises.
    A reopen failure on the error path is logged so the original error
    propagates; on the success path it is raised.

    Usage:
        with closed_for_restore(store):
            shutil.copy2(backup_db, live_db)
    """
    handle.close()
    try:
        yield handle
    except BaseException:
        try:
            handle.reopen()
        except Exception as reopen_error:
            logger.error(
                f"Failed to reopen database after restore failure: {reopen_error}",
                exc_info=True,
            )
        raise
    else:
        handle.reopen()
