# ------------------------------------------------------------------------------
# Backup Utilities for Chat Sync
# utils/backup.py
# ------------------------------------------------------------------------------
"""
Backup archive construction and atomic publication.

An archive is built in memory, written to <name>.zip.tmp next to its final
location and renamed into place, so backup-<millis>.zip always refers to a
complete archive.
"""

import json
import logging
import os
import re
from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path

from utils.archive import write_archive
from utils.path_manager import ZIP_PATHS, SyncPathManager
from utils.sync_errors import ERR_CONFIG_NOT_EXISTS, ERR_DB_NOT_EXISTS, SyncError

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "backup-"
BACKUP_EXTENSION = ".zip"
TMP_SUFFIX = ".tmp"
MANIFEST_VERSION = 1

_BACKUP_TIMESTAMP = re.compile(r"backup-(\d+)\.zip$")


class BackupStatus(str, Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    COLLECTING = "collecting"
    COMPRESSING = "compressing"
    FINALIZING = "finalizing"
    ERROR = "error"


@dataclass
class SyncBackupInfo:
    """Identity of a published backup archive."""

    file_name: str
    created_at: int
    size: int

    def to_dict(self) -> dict:
        data = asdict(self)
        return {
            "fileName": data["file_name"],
            "createdAt": data["created_at"],
            "size": data["size"],
        }


def backup_file_name(timestamp_ms: int) -> str:
    return f"{BACKUP_PREFIX}{timestamp_ms}{BACKUP_EXTENSION}"


def check_backup_sources(pm: SyncPathManager) -> None:
    """
    Fails fast if there is nothing to back up.

    Raises:
        SyncError: dbNotExists / configNotExists
    """
    if not pm.db_path.exists():
        raise SyncError(ERR_DB_NOT_EXISTS)
    if not pm.app_settings_path.exists():
        raise SyncError(ERR_CONFIG_NOT_EXISTS)


def collect_backup_entries(pm: SyncPathManager) -> dict[str, bytes]:
    """
    Reads the database and every present config file into memory.

    The database and app settings are required; prompt and MCP files are
    added only if they exist.
    """
    entries = {
        ZIP_PATHS["db"]: pm.db_path.read_bytes(),
        ZIP_PATHS["app_settings"]: pm.app_settings_path.read_bytes(),
    }

    optional = (
        ("custom_prompts", pm.custom_prompts_path),
        ("system_prompts", pm.system_prompts_path),
        ("mcp_settings", pm.mcp_settings_path),
    )
    for key, path in optional:
        if path.exists():
            entries[ZIP_PATHS[key]] = path.read_bytes()

    logger.debug(f"Collected {len(entries)} entries for backup")
    return entries


def add_manifest(entries: dict[str, bytes], created_at: int) -> dict[str, bytes]:
    """Appends manifest.json listing every collected entry; written last."""
    manifest = {
        "version": MANIFEST_VERSION,
        "createdAt": created_at,
        "files": list(entries.keys()),
    }
    entries[ZIP_PATHS["manifest"]] = json.dumps(manifest, indent=2).encode("utf-8")
    return entries


def write_temp_archive(entries: dict[str, bytes], backups_dir: Path, file_name: str) -> Path:
    """Compresses entries into <file_name>.tmp inside backups_dir."""
    tmp_path = Path(backups_dir) / f"{file_name}{TMP_SUFFIX}"
    data = write_archive(entries)
    with open(tmp_path, "wb") as fh:
        fh.write(data)
        fh.flush()
        os.fsync(fh.fileno())
    return tmp_path


def publish_archive(tmp_path: Path, final_path: Path) -> Path:
    """Atomically moves a finished temp archive onto its final name."""
    os.replace(str(tmp_path), str(final_path))
    logger.info(f"Published backup archive: {final_path}")
    return Path(final_path)


def discard_temp_archive(tmp_path: Path | None) -> None:
    if tmp_path is None:
        return
    try:
        Path(tmp_path).unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Failed to remove temp archive {tmp_path}: {e}")


def parse_backup_timestamp(file_name: str) -> int | None:
    match = _BACKUP_TIMESTAMP.search(file_name)
    return int(match.group(1)) if match else None


def list_backups(backups_dir: str | Path) -> list[SyncBackupInfo]:
    """
    Lists *.zip archives in backups_dir, newest first.

    Creation time comes from the embedded timestamp, falling back to the
    file's modification time in milliseconds.
    """
    backups_dir = Path(backups_dir)
    if not backups_dir.exists():
        return []

    entries = []
    for path in backups_dir.iterdir():
        if not path.is_file() or not path.name.endswith(BACKUP_EXTENSION):
            continue
        stats = path.stat()
        created_at = parse_backup_timestamp(path.name)
        if created_at is None:
            created_at = int(stats.st_mtime * 1000)
        entries.append(
            SyncBackupInfo(file_name=path.name, created_at=created_at, size=stats.st_size)
        )

    entries.sort(key=lambda info: info.created_at, reverse=True)
    return entries
