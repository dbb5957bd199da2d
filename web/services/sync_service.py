"""
Sync Service - Web Layer Service for Backup and Restore Operations.

Thin wrapper over core.sync_core for web-specific concerns.
"""

from typing import Any

from core import sync_core

# --- Constants ---
IMPORT_MODES = tuple(mode.value for mode in sync_core.ImportMode)
SyncError = sync_core.SyncError


# --- Sync Folder ---


def check_sync_folder() -> dict[str, Any]:
    """Check whether the sync folder exists."""
    return sync_core.get_sync_manager().check_sync_folder()


def open_sync_folder() -> None:
    """Create (if needed) and open the sync folder."""
    sync_core.get_sync_manager().open_sync_folder()


# --- Backup Operations ---


def get_backup_status() -> dict[str, Any]:
    """Get backup running state and last backup time."""
    return sync_core.get_sync_manager().get_backup_status()


def list_backups() -> list[dict[str, Any]]:
    """List backups, newest first."""
    return [info.to_dict() for info in sync_core.get_sync_manager().list_backups()]


def start_backup() -> dict[str, Any] | None:
    """Run a backup now; None if one is already running."""
    info = sync_core.get_sync_manager().start_backup()
    return info.to_dict() if info else None


def cancel_backup() -> None:
    """Cancel a scheduled backup."""
    sync_core.get_sync_manager().cancel_backup()


def notify_data_changed() -> None:
    """Schedule a debounced backup."""
    sync_core.get_sync_manager().notify_data_changed()


# --- Restore Operations ---


def import_from_sync(file_name: str, mode: str) -> dict[str, Any]:
    """Restore a backup from the sync folder."""
    return sync_core.get_sync_manager().import_from_sync(file_name, mode).to_dict()
