"""
Exceptions raised by the sync backup/restore utilities.

Every error carries a message key (e.g. ``sync.error.noValidBackup``) that the
UI layer translates; callers never need to inspect the concrete type.
"""

# Message keys
ERR_NOT_ENABLED = "sync.error.notEnabled"
ERR_FOLDER_NOT_EXISTS = "sync.error.folderNotExists"
ERR_NO_VALID_BACKUP = "sync.error.noValidBackup"
ERR_DB_NOT_EXISTS = "sync.error.dbNotExists"
ERR_CONFIG_NOT_EXISTS = "sync.error.configNotExists"
ERR_IMPORT_FAILED = "sync.error.importFailed"
ERR_BACKUP_IN_PROGRESS = "sync.error.backupInProgress"
ERR_RESTORE_IN_PROGRESS = "sync.error.restoreInProgress"
ERR_CIPHER_UNAVAILABLE = "sync.error.cipherUnavailable"
ERR_UNKNOWN = "sync.error.unknown"
MSG_IMPORT_COMPLETE = "sync.success.importComplete"


class SyncError(Exception):
    """Base class for sync failures; ``message_key`` is user-facing."""

    def __init__(self, message_key: str = ERR_UNKNOWN, detail: str | None = None):
        self.message_key = message_key
        self.detail = detail
        super().__init__(message_key if detail is None else f"{message_key}: {detail}")


class ArchiveValidationError(SyncError):
    """Archive bytes or an entry path failed validation."""

    def __init__(self, detail: str | None = None):
        super().__init__(ERR_NO_VALID_BACKUP, detail)


class ConfigMergeError(SyncError):
    """A backup JSON document could not be read or parsed."""

    def __init__(self, detail: str | None = None):
        super().__init__(ERR_NO_VALID_BACKUP, detail)


class TableImportError(SyncError):
    """Importing a table failed; the whole import was rolled back."""

    def __init__(self, table: str | None, cause: str):
        self.table = table
        if table:
            detail = f"Failed to import table {table}: {cause}"
        else:
            detail = f"Failed to import database: {cause}"
        super().__init__(ERR_IMPORT_FAILED, detail)


class CipherUnavailableError(SyncError):
    """A cipher key is configured but this SQLite build cannot apply it."""

    def __init__(self, detail: str | None = None):
        super().__init__(ERR_CIPHER_UNAVAILABLE, detail)
