# ------------------------------------------------------------------------------
# Table Importer for Chat Sync
# utils/db_import.py
# ------------------------------------------------------------------------------
"""
Imports rows from a backup SQLite database into the live one.

Only columns present in both schemas are copied, so backups from older or
newer releases import without a migration step. Tables with a primary key use
INSERT OR IGNORE, which makes re-importing the same backup a no-op.
"""

import logging
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path

from utils.sync_errors import CipherUnavailableError, TableImportError

logger = logging.getLogger(__name__)

# Parents before children; everything else follows in lexical order
PREFERRED_TABLE_ORDER = (
    "conversations",
    "messages",
    "attachments",
    "message_attachments",
)


@dataclass
class ColumnInfo:
    name: str
    pk: int


@dataclass
class TableImportPlan:
    """Per-table import plan derived from both schemas."""

    table: str
    columns: list[str]
    pk_columns: list[str]


@dataclass
class ImportSummary:
    """Rows inserted per table (tables with zero inserts are omitted)."""

    table_counts: dict[str, int] = field(default_factory=dict)


def quote_identifier(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def apply_cipher_key(conn: sqlite3.Connection, cipher_key: str) -> None:
    """
    Keys a fresh connection for an encrypted database.

    Must run before anything reads the file.

    Raises:
        CipherUnavailableError: the linked SQLite has no SQLCipher support,
            so PRAGMA key would be silently ignored
    """
    row = conn.execute("PRAGMA cipher_version").fetchone()
    if not row or not row[0]:
        raise CipherUnavailableError(
            "A database cipher key is configured but this SQLite build "
            "does not support encryption"
        )
    hex_key = cipher_key.encode("utf-8").hex()
    conn.execute(f"PRAGMA key = \"x'{hex_key}'\"")


def open_database(
    db_path: str | Path, cipher_key: str | None = None, wal: bool = True
) -> sqlite3.Connection:
    """Opens a SQLite file (WAL mode unless wal=False), applying a cipher key if given."""
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    try:
        if cipher_key:
            apply_cipher_key(conn, cipher_key)
        if wal:
            conn.execute("PRAGMA journal_mode=WAL;")
    except Exception:
        conn.close()
        raise
    return conn


class DataImporter:
    """
    Copies rows from a source database into a target database.

    Args:
        source_path: Path to the backup database
        target: Path to the live database, or an open connection
        source_key: Optional cipher key for the source
        target_key: Optional cipher key for the target
    """

    def __init__(
        self,
        source_path: str | Path,
        target: str | Path | sqlite3.Connection,
        source_key: str | None = None,
        target_key: str | None = None,
    ):
        self.source_conn = open_database(source_path, source_key)
        if isinstance(target, sqlite3.Connection):
            self.target_conn = target
            self._owns_target = False
        else:
            try:
                self.target_conn = open_database(target, target_key)
            except Exception:
                self.source_conn.close()
                raise
            self._owns_target = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def import_data(self) -> ImportSummary:
        """
        Imports every table in one transaction.

        Raises:
            TableImportError: on any failure; the target is left untouched
        """
        summary = ImportSummary()
        tables = self.get_tables_in_order()
        current_table = None

        try:
            self.target_conn.execute("BEGIN")
            for table in tables:
                current_table = table
                inserted = self._import_table(table)
                if inserted > 0:
                    summary.table_counts[table] = inserted
            current_table = None
            self.target_conn.commit()
        except Exception as e:
            self.target_conn.rollback()
            logger.error(f"Data import rolled back: {e}", exc_info=True)
            if isinstance(e, TableImportError):
                raise
            raise TableImportError(current_table, str(e)) from e

        logger.info(f"Data import complete: {summary.table_counts}")
        return summary

    def get_tables_in_order(self) -> list[str]:
        cursor = self.source_conn.execute(
            "SELECT name FROM sqlite_master "
            "WHERE type='table' AND name NOT LIKE 'sqlite_%'"
        )
        names = [row[0] for row in cursor.fetchall()]

        preferred = [name for name in PREFERRED_TABLE_ORDER if name in names]
        remaining = sorted(name for name in names if name not in PREFERRED_TABLE_ORDER)
        return preferred + remaining

    def build_plan(self, table: str) -> TableImportPlan | None:
        """Returns the import plan for a table, or None if it must be skipped."""
        source_columns = self._get_table_columns(self.source_conn, table)
        target_columns = self._get_table_columns(self.target_conn, table)

        if not target_columns:
            return None

        target_names = {column.name for column in target_columns}
        common = [column.name for column in source_columns if column.name in target_names]
        if not common:
            return None

        common_set = set(common)
        pk_columns = [
            column.name
            for column in sorted(target_columns, key=lambda c: c.pk)
            if column.pk > 0 and column.name in common_set
        ]
        return TableImportPlan(table=table, columns=common, pk_columns=pk_columns)

    def _import_table(self, table: str) -> int:
        plan = self.build_plan(table)
        if plan is None:
            return 0

        wrapped_table = quote_identifier(table)
        column_sql = ", ".join(quote_identifier(name) for name in plan.columns)
        rows = self.source_conn.execute(
            f"SELECT {column_sql} FROM {wrapped_table}"
        ).fetchall()
        if not rows:
            return 0

        placeholders = ", ".join("?" for _ in plan.columns)
        verb = "INSERT OR IGNORE" if plan.pk_columns else "INSERT"
        insert_sql = f"{verb} INTO {wrapped_table} ({column_sql}) VALUES ({placeholders})"

        inserted = 0
        for row in rows:
            cursor = self.target_conn.execute(insert_sql, tuple(row))
            if not plan.pk_columns or cursor.rowcount > 0:
                inserted += 1

        logger.debug(f"Imported {inserted}/{len(rows)} rows into {table}")
        return inserted

    @staticmethod
    def _get_table_columns(conn: sqlite3.Connection, table: str) -> list[ColumnInfo]:
        try:
            cursor = conn.execute(f"PRAGMA table_info({quote_identifier(table)})")
            return [ColumnInfo(name=row[1], pk=row[5]) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            logger.warning(f"Failed to read table info for {table}: {e}")
            return []

    def close(self) -> None:
        if self.source_conn is not None:
            self.source_conn.close()
            self.source_conn = None
        if self._owns_target and self.target_conn is not None:
            self.target_conn.close()
            self.target_conn = None
