# ------------------------------------------------------------------------------
# Restore Utilities for Chat Sync
# utils/restore.py
# ------------------------------------------------------------------------------
"""
Restore helpers: backup filename validation, per-call restore session with
live-file snapshots and rollback, and database file replacement.
"""

import logging
import re
import shutil
import sqlite3
import tempfile
import time
from pathlib import Path

from utils.archive import extract_archive
from utils.db_import import open_database
from utils.path_manager import ZIP_PATHS, SyncPathManager
from utils.sync_errors import ArchiveValidationError

logger = logging.getLogger(__name__)

BACKUP_FILE_NAME_REGEX = re.compile(r"^backup-\d+\.zip$")


def ensure_safe_backup_filename(file_name: str) -> str:
    """
    Validates a user-supplied backup name.

    Only bare names matching backup-<digits>.zip are accepted; anything with
    directory components is rejected.

    Raises:
        ArchiveValidationError: if the name is not acceptable
    """
    normalized = (file_name or "").replace("\\", "/").strip()
    if not normalized:
        raise ArchiveValidationError("Empty backup file name")

    base_name = normalized.rsplit("/", 1)[-1]
    if base_name != normalized:
        raise ArchiveValidationError(f"Backup name has directory parts: {file_name}")

    if not BACKUP_FILE_NAME_REGEX.match(base_name):
        raise ArchiveValidationError(f"Not a backup file name: {file_name}")

    return base_name


def copy_file(source: Path, target: Path) -> None:
    target = Path(target)
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(source, target)


def cleanup_database_sidecar_files(pm: SyncPathManager) -> None:
    """Deletes chat.db-wal / chat.db-shm so the next open sees a clean file."""
    for sidecar in pm.get_db_sidecar_paths():
        if not sidecar.exists():
            continue
        try:
            sidecar.unlink()
            logger.info(f"Deleted database sidecar file: {sidecar}")
        except OSError as e:
            logger.warning(f"Failed to remove database sidecar file {sidecar}: {e}")


def count_conversations(db_path: Path, cipher_key: str | None = None) -> int:
    """
    Counts rows in the conversations table of a backup database.

    The file is opened without switching its journal mode so it can still
    be copied byte-for-byte afterwards.

    Raises:
        CipherUnavailableError: a key is given but cannot be applied
    """
    conn = open_database(db_path, cipher_key, wal=False)
    try:
        row = conn.execute("SELECT COUNT(*) FROM conversations").fetchone()
        return row[0] if row else 0
    except sqlite3.OperationalError as e:
        logger.warning(f"Could not count conversations in backup: {e}")
        return 0
    finally:
        conn.close()


class RestoreSession:
    """
    Ephemeral state for one import: extraction dir and live-file snapshots.

    Usage:
        session = RestoreSession(pm)
        try:
            session.extract(archive_path)
            session.snapshot()
            ...
        except Exception:
            session.rollback()
        finally:
            session.cleanup()
    """

    def __init__(self, pm: SyncPathManager):
        self.pm = pm
        tmp_root = pm.get_restore_tmp_dir()
        self.work_dir = Path(
            tempfile.mkdtemp(prefix=f"chatsync-backup-{int(time.time() * 1000)}-", dir=tmp_root)
        )
        self.extraction_dir = self.work_dir / "extracted"
        self.snapshot_dir = self.work_dir / "snapshots"
        # live path -> snapshot path (None = file did not exist)
        self.snapshots: dict[Path, Path | None] = {}

    def extracted_path(self, key: str) -> Path:
        """Path of an archive entry (ZIP_PATHS key) inside the extraction dir."""
        return self.extraction_dir.joinpath(*ZIP_PATHS[key].split("/"))

    def extract(self, archive_path: Path) -> list[Path]:
        """
        Extracts the archive and checks the required entries.

        Raises:
            ArchiveValidationError: unsafe archive, or DB/settings missing
        """
        written = extract_archive(archive_path, self.extraction_dir)
        if not self.extracted_path("db").exists() or not self.extracted_path(
            "app_settings"
        ).exists():
            raise ArchiveValidationError("Backup is missing database or settings")
        logger.info(f"Extracted {len(written)} files from {Path(archive_path).name}")
        return written

    def snapshot(self) -> None:
        """Copies every live file a restore may touch; absent files are recorded."""
        self.snapshot_dir.mkdir(parents=True, exist_ok=True)
        targets = list(self.pm.live_paths().values()) + self.pm.get_db_sidecar_paths()
        for index, live_path in enumerate(targets):
            if live_path.exists():
                snapshot_path = self.snapshot_dir / f"{index:02d}_{live_path.name}.bak"
                copy_file(live_path, snapshot_path)
                self.snapshots[live_path] = snapshot_path
            else:
                self.snapshots[live_path] = None
        logger.debug(f"Snapshotted {len(self.snapshots)} live files")

    def rollback(self) -> dict[str, bool]:
        """
        Puts every snapshotted file back in place.

        Files that did not exist before the restore are removed again, so the
        live state matches the pre-restore state exactly.

        Returns:
            dict: live file name -> restored
        """
        result = {}
        for live_path, snapshot_path in self.snapshots.items():
            try:
                if snapshot_path is not None:
                    copy_file(snapshot_path, live_path)
                    logger.warning(f"ROLLBACK: Restored {live_path}")
                elif live_path.exists():
                    live_path.unlink()
                    logger.warning(f"ROLLBACK: Removed {live_path}")
                result[live_path.name] = True
            except OSError as e:
                logger.error(f"ROLLBACK FAILED: Could not restore {live_path}: {e}")
                result[live_path.name] = False
        return result

    def cleanup(self) -> None:
        """Removes the extraction dir and snapshots."""
        if self.work_dir.exists():
            shutil.rmtree(self.work_dir, ignore_errors=True)
        self.snapshots = {}
