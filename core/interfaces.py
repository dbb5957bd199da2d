"""
Sync Interfaces - Collaborators of the backup/restore engine.

Defines the contracts the engine consumes (settings store, database handle,
window layer) and the observer it notifies. Concrete adapters live in utils/.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Event names broadcast to the observer
BACKUP_STARTED = "backup_started"
BACKUP_COMPLETED = "backup_completed"
BACKUP_ERROR = "backup_error"
BACKUP_STATUS_CHANGED = "backup_status_changed"
IMPORT_STARTED = "import_started"
IMPORT_COMPLETED = "import_completed"
IMPORT_ERROR = "import_error"


class SettingsStoreInterface(ABC):
    """Key/value access to the sync-related application settings."""

    @abstractmethod
    def get_sync_enabled(self) -> bool:
        pass

    @abstractmethod
    def get_sync_folder_path(self) -> str | Path:
        pass

    @abstractmethod
    def get_last_sync_time(self) -> int:
        pass

    @abstractmethod
    def set_last_sync_time(self, timestamp: int) -> None:
        pass


class DatabaseHandleInterface(ABC):
    """The single live handle to the relational store."""

    @abstractmethod
    def close(self) -> None:
        """Releases the live connection so the file can be replaced."""
        pass

    @abstractmethod
    def reopen(self) -> None:
        """Re-establishes the live connection."""
        pass

    def checkpoint(self) -> None:
        """Flushes pending writes into the main database file. Optional."""
        pass


class SyncObserver(ABC):
    """
    Receives lifecycle notifications from the engine.

    Delivery is fire-and-forget: exceptions raised by an observer are logged
    by the engine and never change the outcome of a backup or restore.
    """

    @abstractmethod
    def on_event(self, event: str, payload: Any = None) -> None:
        pass

    @abstractmethod
    def refresh_threads(self) -> None:
        """Reload in-memory thread/session listings after an import."""
        pass


class WindowResetInterface(ABC):
    """Window layer hook used after an overwrite restore."""

    @abstractmethod
    def reset_to_single_blank_tab(self) -> None:
        """Collapse every open window to one blank tab."""
        pass


class NullSyncObserver(SyncObserver):
    def on_event(self, event: str, payload: Any = None) -> None:
        pass

    def refresh_threads(self) -> None:
        pass


class LoggingSyncObserver(SyncObserver):
    """Observer that only writes notifications to the log."""

    def on_event(self, event: str, payload: Any = None) -> None:
        logger.info(f"Sync event: {event} {payload if payload is not None else ''}")

    def refresh_threads(self) -> None:
        logger.debug("Thread list refresh requested")
