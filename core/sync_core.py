"""
Sync Core - Backup and Restore Orchestration.

SyncManager owns the backup state machine, the debounced backup scheduler
and the restore engine. Collaborators (settings store, database handle,
observer, window layer) are injected; see core.interfaces.

Backup and restore are mutually exclusive: a restore refuses to start while
a backup runs, and backups (manual or scheduled) are skipped while a
restore has the database closed.
"""

import logging
import os
import platform
import subprocess
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from core.interfaces import (
    BACKUP_COMPLETED,
    BACKUP_ERROR,
    BACKUP_STARTED,
    BACKUP_STATUS_CHANGED,
    IMPORT_COMPLETED,
    IMPORT_ERROR,
    IMPORT_STARTED,
    DatabaseHandleInterface,
    NullSyncObserver,
    SettingsStoreInterface,
    SyncObserver,
    WindowResetInterface,
)
from utils.backup import (
    BackupStatus,
    SyncBackupInfo,
    add_manifest,
    backup_file_name,
    check_backup_sources,
    collect_backup_entries,
    discard_temp_archive,
    list_backups,
    publish_archive,
    write_temp_archive,
)
from utils.config_merge import (
    merge_app_settings_preserving_sync,
    merge_mcp_settings,
    merge_prompt_store,
)
from utils.db_import import DataImporter
from utils.path_manager import SyncPathManager
from utils.restore import (
    RestoreSession,
    cleanup_database_sidecar_files,
    copy_file,
    count_conversations,
    ensure_safe_backup_filename,
)
from utils.sqlite_store import closed_for_restore
from utils.sync_errors import (
    ERR_BACKUP_IN_PROGRESS,
    ERR_FOLDER_NOT_EXISTS,
    ERR_IMPORT_FAILED,
    ERR_NO_VALID_BACKUP,
    ERR_NOT_ENABLED,
    ERR_RESTORE_IN_PROGRESS,
    ERR_UNKNOWN,
    MSG_IMPORT_COMPLETE,
    ArchiveValidationError,
    SyncError,
)

logger = logging.getLogger(__name__)

DEFAULT_BACKUP_DELAY_SECONDS = 60.0


class ImportMode(str, Enum):
    OVERWRITE = "overwrite"
    INCREMENT = "increment"


@dataclass
class ImportResult:
    success: bool
    message: str
    count: int | None = None

    def to_dict(self) -> dict[str, Any]:
        result = {"success": self.success, "message": self.message}
        if self.count is not None:
            result["count"] = self.count
        return result


def _message_key(error: Exception) -> str:
    if isinstance(error, SyncError):
        return error.message_key
    return str(error) or ERR_UNKNOWN


def open_in_file_manager(path: str | Path) -> None:
    """Opens a folder in the platform file manager."""
    system = platform.system()
    if system == "Windows":
        os.startfile(str(path))
    elif system == "Darwin":
        subprocess.run(["open", str(path)], check=False)
    else:
        subprocess.run(["xdg-open", str(path)], check=False)


class SyncManager:
    """
    Backup/restore engine for the chat database and JSON config stores.

    Args:
        settings_store: Sync settings (enabled flag, folder, last sync time)
        db_handle: Live database handle with close()/reopen()
        path_manager: Locations of the live files
        observer: Receives lifecycle notifications
        window_layer: Optional hook used after an overwrite restore
        backup_delay: Debounce window for scheduled backups, in seconds
        cipher_key: Key of an already-encrypted database, if any
        folder_opener: Callable used by open_sync_folder()
    """

    def __init__(
        self,
        settings_store: SettingsStoreInterface,
        db_handle: DatabaseHandleInterface,
        path_manager: SyncPathManager,
        observer: SyncObserver | None = None,
        window_layer: WindowResetInterface | None = None,
        backup_delay: float = DEFAULT_BACKUP_DELAY_SECONDS,
        cipher_key: str | None = None,
        folder_opener: Callable[[Path], None] | None = None,
    ):
        self.settings = settings_store
        self.db = db_handle
        self.pm = path_manager
        self.observer = observer or NullSyncObserver()
        self.window_layer = window_layer
        self.backup_delay = backup_delay
        self.cipher_key = cipher_key
        self.folder_opener = folder_opener or open_in_file_manager

        self.is_backing_up = False
        self.is_restoring = False
        self.current_status = BackupStatus.IDLE
        self._state_lock = threading.Lock()
        self._backup_timer: threading.Timer | None = None
        self._timer_lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------
    def _emit(self, event: str, payload: Any = None) -> None:
        try:
            self.observer.on_event(event, payload)
        except Exception as e:
            logger.warning(f"Sync observer failed on {event}: {e}")

    def _emit_status(self, status: BackupStatus, extra: dict | None = None) -> None:
        payload = {
            "status": status.value,
            "previousStatus": self.current_status.value,
        }
        if extra:
            payload.update(extra)
        self._emit(BACKUP_STATUS_CHANGED, payload)
        self.current_status = status

    def _refresh_threads(self) -> None:
        try:
            self.observer.refresh_threads()
        except Exception as e:
            logger.warning(f"Failed to refresh thread list after import: {e}")

    def _reset_windows(self) -> None:
        if self.window_layer is None:
            return
        try:
            self.window_layer.reset_to_single_blank_tab()
        except Exception as e:
            logger.warning(f"Failed to reset windows after overwrite import: {e}")

    # -------------------------------------------------------------------------
    # Sync folder
    # -------------------------------------------------------------------------
    def get_backups_directory(self) -> Path:
        return Path(self.settings.get_sync_folder_path())

    def check_sync_folder(self) -> dict[str, Any]:
        folder = self.get_backups_directory()
        return {"exists": folder.exists(), "path": str(folder)}

    def open_sync_folder(self) -> None:
        folder = self.get_backups_directory()
        folder.mkdir(parents=True, exist_ok=True)
        self.folder_opener(folder)

    def get_backup_status(self) -> dict[str, Any]:
        return {
            "isBackingUp": self.is_backing_up,
            "lastBackupTime": self.settings.get_last_sync_time(),
        }

    def list_backups(self) -> list[SyncBackupInfo]:
        return list_backups(self.get_backups_directory())

    # -------------------------------------------------------------------------
    # Backup
    # -------------------------------------------------------------------------
    def start_backup(self) -> SyncBackupInfo | None:
        """
        Runs a backup now.

        Returns:
            SyncBackupInfo, or None if a backup or restore is already running

        Raises:
            SyncError: sync disabled. Any other failure is re-raised after
                the backup_error notification.
        """
        if self.is_backing_up or self.is_restoring:
            return None

        if not self.settings.get_sync_enabled():
            raise SyncError(ERR_NOT_ENABLED)

        try:
            return self._perform_backup()
        except Exception as e:
            logger.error(f"Backup failed: {e}")
            self._emit(BACKUP_ERROR, _message_key(e))
            raise

    def _perform_backup(self) -> SyncBackupInfo | None:
        with self._state_lock:
            if self.is_backing_up or self.is_restoring:
                return None
            self.is_backing_up = True

        tmp_path = None
        completed_timestamp = None
        failed = False

        try:
            self._emit_status(BackupStatus.PREPARING)
            self._emit(BACKUP_STARTED)

            backups_dir = self.get_backups_directory()
            backups_dir.mkdir(parents=True, exist_ok=True)

            timestamp = int(time.time() * 1000)
            file_name = backup_file_name(timestamp)
            final_path = backups_dir / file_name

            check_backup_sources(self.pm)

            self._emit_status(BackupStatus.COLLECTING)
            self._checkpoint_database()
            entries = collect_backup_entries(self.pm)
            add_manifest(entries, timestamp)

            self._emit_status(BackupStatus.COMPRESSING)
            tmp_path = write_temp_archive(entries, backups_dir, file_name)

            self._emit_status(BackupStatus.FINALIZING)
            publish_archive(tmp_path, final_path)
            tmp_path = None

            size = final_path.stat().st_size
            self.settings.set_last_sync_time(timestamp)
            self._emit(BACKUP_COMPLETED, timestamp)
            completed_timestamp = timestamp

            logger.info(f"Backup complete: {file_name} ({size} bytes)")
            return SyncBackupInfo(file_name=file_name, created_at=timestamp, size=size)

        except Exception as e:
            discard_temp_archive(tmp_path)
            failed = True
            self._emit_status(BackupStatus.ERROR, {"message": _message_key(e)})
            raise

        finally:
            with self._state_lock:
                self.is_backing_up = False
            extra = {}
            if completed_timestamp:
                extra["lastSuccessfulBackupTime"] = completed_timestamp
            if failed:
                extra["failed"] = True
            self._emit_status(BackupStatus.IDLE, extra)

    def _checkpoint_database(self) -> None:
        """Folds the WAL into chat.db so the copied file holds every committed row."""
        try:
            self.db.checkpoint()
        except Exception as e:
            logger.warning(f"WAL checkpoint before backup failed: {e}")

    # -------------------------------------------------------------------------
    # Scheduler
    # -------------------------------------------------------------------------
    def notify_data_changed(self) -> None:
        """(Re)starts the debounce timer; the backup runs once things go quiet."""
        if not self.settings.get_sync_enabled():
            return

        with self._timer_lock:
            if self._backup_timer is not None:
                self._backup_timer.cancel()
            timer = threading.Timer(self.backup_delay, self._run_scheduled_backup)
            timer.daemon = True
            self._backup_timer = timer
            timer.start()

    def _run_scheduled_backup(self) -> None:
        with self._timer_lock:
            self._backup_timer = None

        if self.is_backing_up or self.is_restoring:
            logger.debug("Scheduled backup skipped: sync operation in progress")
            return

        try:
            self._perform_backup()
        except Exception as e:
            logger.error(f"Auto backup failed: {e}", exc_info=True)

    @property
    def has_pending_backup(self) -> bool:
        return self._backup_timer is not None

    def cancel_backup(self) -> None:
        """Cancels a scheduled backup; a running backup is not interrupted."""
        with self._timer_lock:
            if self._backup_timer is not None:
                self._backup_timer.cancel()
                self._backup_timer = None

    def destroy(self) -> None:
        self.cancel_backup()

    # -------------------------------------------------------------------------
    # Restore
    # -------------------------------------------------------------------------
    def import_from_sync(
        self, file_name: str, mode: ImportMode | str = ImportMode.INCREMENT
    ) -> ImportResult:
        """
        Restores a backup from the sync folder.

        Never raises for restore failures; the live state is rolled back and
        a failure result is returned instead.

        Args:
            file_name: Bare backup name (backup-<millis>.zip)
            mode: ImportMode.OVERWRITE or ImportMode.INCREMENT
        """
        mode = ImportMode(mode)
        self.cancel_backup()

        folder = self.check_sync_folder()
        if not folder["exists"]:
            return ImportResult(False, ERR_FOLDER_NOT_EXISTS)

        try:
            safe_name = ensure_safe_backup_filename(file_name)
        except ArchiveValidationError as e:
            logger.warning(f"Failed to validate backup file name: {e}")
            return ImportResult(False, ERR_NO_VALID_BACKUP)

        archive_path = self.get_backups_directory() / safe_name
        if not archive_path.is_file():
            return ImportResult(False, ERR_NO_VALID_BACKUP)

        with self._state_lock:
            if self.is_backing_up:
                return ImportResult(False, ERR_BACKUP_IN_PROGRESS)
            if self.is_restoring:
                return ImportResult(False, ERR_RESTORE_IN_PROGRESS)
            self.is_restoring = True

        try:
            return self._perform_import(archive_path, mode)
        finally:
            with self._state_lock:
                self.is_restoring = False

    def _perform_import(self, archive_path: Path, mode: ImportMode) -> ImportResult:
        self._emit(IMPORT_STARTED)
        session = RestoreSession(self.pm)

        try:
            try:
                session.extract(archive_path)
            except ArchiveValidationError as e:
                logger.warning(f"Rejected backup archive {archive_path.name}: {e}")
                self._emit(IMPORT_ERROR, e.message_key)
                return ImportResult(False, ERR_NO_VALID_BACKUP)
            except Exception as e:
                logger.error(
                    f"Failed to extract backup archive {archive_path.name}: {e}",
                    exc_info=True,
                )
                self._emit(IMPORT_ERROR, ERR_NO_VALID_BACKUP)
                return ImportResult(False, ERR_NO_VALID_BACKUP)

            try:
                with closed_for_restore(self.db):
                    session.snapshot()
                    if mode is ImportMode.OVERWRITE:
                        count = self._apply_overwrite(session)
                    else:
                        count = self._apply_increment(session)

                self._refresh_threads()
                if mode is ImportMode.OVERWRITE:
                    self._reset_windows()

            except Exception as e:
                logger.error(f"Import failed, reverting: {e}", exc_info=True)
                self._rollback(session)
                self._emit(IMPORT_ERROR, _message_key(e))
                return ImportResult(False, ERR_IMPORT_FAILED)

            self._emit(IMPORT_COMPLETED)
            logger.info(f"Import of {archive_path.name} complete ({mode.value}): {count}")
            return ImportResult(True, MSG_IMPORT_COMPLETE, count)

        finally:
            session.cleanup()

    def _apply_overwrite(self, session: RestoreSession) -> int:
        backup_db = session.extracted_path("db")
        count = count_conversations(backup_db, self.cipher_key)

        copy_file(backup_db, self.pm.db_path)
        cleanup_database_sidecar_files(self.pm)
        merge_app_settings_preserving_sync(
            session.extracted_path("app_settings"),
            self.pm.app_settings_path,
            self.settings,
        )

        live = self.pm.live_paths()
        for key in ("custom_prompts", "system_prompts", "mcp_settings"):
            source = session.extracted_path(key)
            if source.exists():
                copy_file(source, live[key])

        return count

    def _apply_increment(self, session: RestoreSession) -> int:
        with DataImporter(
            session.extracted_path("db"),
            self.pm.db_path,
            source_key=self.cipher_key,
            target_key=self.cipher_key,
        ) as importer:
            summary = importer.import_data()

        for key, target in (
            ("custom_prompts", self.pm.custom_prompts_path),
            ("system_prompts", self.pm.system_prompts_path),
        ):
            source = session.extracted_path(key)
            if source.exists():
                merge_prompt_store(source, target)

        mcp_source = session.extracted_path("mcp_settings")
        if mcp_source.exists():
            merge_mcp_settings(mcp_source, self.pm.mcp_settings_path)

        return summary.table_counts.get("conversations", 0)

    def _rollback(self, session: RestoreSession) -> None:
        """Restores the snapshots with the store closed, then reopens it."""
        try:
            with closed_for_restore(self.db):
                result = session.rollback()
            logger.info(f"Rollback completed: {result}")
        except Exception as e:
            logger.error(f"Rollback failed: {e}", exc_info=True)
        self._refresh_threads()


# Global Instance - to be initialized by the app at startup
_instance: SyncManager | None = None


def init_sync_manager(manager: SyncManager) -> SyncManager:
    global _instance
    if _instance is not None and _instance is not manager:
        _instance.destroy()
    _instance = manager
    return manager


def get_sync_manager() -> SyncManager:
    global _instance
    if _instance is None:
        _instance = create_sync_manager()
    return _instance


def create_sync_manager(
    config: dict | None = None,
    observer: SyncObserver | None = None,
    window_layer: WindowResetInterface | None = None,
) -> SyncManager:
    """
    Builds a SyncManager wired to the on-disk stores from configuration.
    """
    from utils.settings import AppSettingsStore
    from utils.sqlite_store import SQLiteStore

    if config is None:
        from config import get_config

        config = get_config()

    pm = SyncPathManager(config["DATA_DIR"], config["TEMP_DIR"])
    settings_store = AppSettingsStore(pm.app_settings_path, config["SYNC_FOLDER_PATH"])
    db_handle = SQLiteStore(pm.db_path, cipher_key=config["DB_CIPHER_KEY"])

    return SyncManager(
        settings_store,
        db_handle,
        pm,
        observer=observer,
        window_layer=window_layer,
        backup_delay=config["SYNC_BACKUP_DELAY_SECONDS"],
        cipher_key=config["DB_CIPHER_KEY"],
    )
