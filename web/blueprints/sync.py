"""
Sync Blueprint.

Handles backup and restore routes:
- GET /api/sync/folder - Sync folder location and existence
- POST /api/sync/folder/open - Create and open the sync folder
- GET /api/sync/status - Backup running state and last backup time
- GET /api/sync/backups - Backups in the sync folder, newest first
- POST /api/sync/backup - Run a backup now
- POST /api/sync/backup/cancel - Cancel a scheduled backup
- POST /api/sync/data-changed - Schedule a debounced backup
- POST /api/sync/import - Restore a backup (overwrite | increment)
"""

from flask import Blueprint, jsonify, request

from logging_config import get_logger
from web.services import sync_service

logger = get_logger(__name__)

sync_bp = Blueprint("sync", __name__)


@sync_bp.route("/api/sync/folder", methods=["GET"])
def sync_folder():
    return jsonify(sync_service.check_sync_folder())


@sync_bp.route("/api/sync/folder/open", methods=["POST"])
def sync_folder_open():
    try:
        sync_service.open_sync_folder()
        return jsonify({"status": "success"})
    except Exception as e:
        logger.error(f"Open sync folder error: {e}")
        return jsonify({"error": str(e)}), 500


@sync_bp.route("/api/sync/status", methods=["GET"])
def sync_status():
    return jsonify(sync_service.get_backup_status())


@sync_bp.route("/api/sync/backups", methods=["GET"])
def sync_backups():
    """Lists backup archives in the sync folder."""
    try:
        return jsonify({"backups": sync_service.list_backups()})
    except Exception as e:
        logger.error(f"List backups error: {e}")
        return jsonify({"error": str(e)}), 500


@sync_bp.route("/api/sync/backup", methods=["POST"])
def sync_backup_create():
    """
    Runs a backup synchronously and returns the new archive's identity.
    """
    try:
        info = sync_service.start_backup()
    except sync_service.SyncError as e:
        logger.warning(f"Backup rejected: {e}")
        return jsonify({"error": e.message_key}), 400
    except Exception as e:
        logger.error(f"Backup create error: {e}", exc_info=True)
        return jsonify({"error": str(e)}), 500

    if info is None:
        return jsonify({"error": "Another sync operation is in progress"}), 409
    return jsonify({"status": "success", "backup": info})


@sync_bp.route("/api/sync/backup/cancel", methods=["POST"])
def sync_backup_cancel():
    sync_service.cancel_backup()
    return jsonify({"status": "success"})


@sync_bp.route("/api/sync/data-changed", methods=["POST"])
def sync_data_changed():
    sync_service.notify_data_changed()
    return jsonify({"status": "success"})


@sync_bp.route("/api/sync/import", methods=["POST"])
def sync_import():
    """
    Restores a backup from the sync folder.

    Body: {"fileName": "backup-<millis>.zip", "mode": "increment" | "overwrite"}
    """
    data = request.get_json(silent=True) or {}
    file_name = data.get("fileName")
    mode = data.get("mode", "increment")

    if not file_name:
        return jsonify({"error": "fileName is required"}), 400
    if mode not in sync_service.IMPORT_MODES:
        return (
            jsonify({"error": f"mode must be one of {', '.join(sync_service.IMPORT_MODES)}"}),
            400,
        )

    result = sync_service.import_from_sync(file_name, mode)
    if not result["success"]:
        logger.warning(f"Import of {file_name} failed: {result['message']}")
        return jsonify(result), 409
    return jsonify(result)
