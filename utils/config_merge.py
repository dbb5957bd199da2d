# ------------------------------------------------------------------------------
# Config Store Mergers for Chat Sync
# utils/config_merge.py
# ------------------------------------------------------------------------------
"""
Merges JSON configuration documents from a backup into the live files.

- App settings (overwrite restore): backup wins, except for the sync keys.
- Prompt libraries (increment restore): union by prompt id.
- MCP registry (increment restore): union by server name, knowledge servers
  excluded, unknown top-level keys passed through.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from utils.sync_errors import ConfigMergeError

logger = logging.getLogger(__name__)

# Keys that always keep the live value after an overwrite restore
PRESERVED_SYNC_KEYS = ("syncEnabled", "syncFolderPath", "lastSyncTime")

KNOWLEDGE_MARKER = "knowledge"


def write_json_atomic(path: Path, data: Any) -> None:
    """Writes JSON atomically via temp file + rename."""
    path = Path(path)
    dir_path = path.parent
    dir_path.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=str(dir_path), suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2, ensure_ascii=False)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, str(path))
    except Exception:
        # Clean up temp file on failure
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def _load_backup_json(path: Path) -> Any:
    """Loads a JSON document from a backup; any failure is fatal."""
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        logger.error(f"Failed to read backup file {path}: {e}")
        raise ConfigMergeError(f"Cannot read {Path(path).name}: {e}") from e
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse backup JSON {path}: {e}")
        raise ConfigMergeError(f"Invalid JSON in {Path(path).name}: {e}") from e


# ---------------------------------------------------------------------------
# App settings
# ---------------------------------------------------------------------------


def merge_app_settings_preserving_sync(
    backup_path: Path, target_path: Path, settings_store
) -> dict[str, Any]:
    """
    Writes the backup settings to target_path, keeping the live sync keys.

    Args:
        backup_path: Extracted app-settings.json from the backup
        target_path: Live app-settings.json
        settings_store: Provides the current sync values

    Returns:
        dict: The merged settings that were written
    """
    backup_settings = _load_backup_json(backup_path)
    if not isinstance(backup_settings, dict):
        raise ConfigMergeError("app-settings.json is not a JSON object")

    preserved = {
        "syncEnabled": settings_store.get_sync_enabled(),
        "syncFolderPath": settings_store.get_sync_folder_path(),
        "lastSyncTime": settings_store.get_last_sync_time(),
    }

    merged = dict(backup_settings)
    for key in PRESERVED_SYNC_KEYS:
        value = preserved[key]
        if value is not None:
            merged[key] = str(value) if isinstance(value, Path) else value

    write_json_atomic(target_path, merged)
    logger.info(f"App settings restored with {len(merged)} keys (sync keys preserved)")
    return merged


# ---------------------------------------------------------------------------
# Prompt libraries
# ---------------------------------------------------------------------------


def read_prompt_store(path: Path) -> dict[str, Any] | None:
    """
    Reads a live prompt store; malformed content counts as an empty store.

    Returns:
        dict | None: None if the file does not exist
    """
    path = Path(path)
    if not path.exists():
        return None
    try:
        parsed = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Failed to read prompt store {path}: {e}")
        return {"prompts": []}
    if not isinstance(parsed, dict) or not isinstance(parsed.get("prompts"), list):
        return {"prompts": []}
    return parsed


def merge_prompt_store(backup_path: Path, target_path: Path) -> int:
    """
    Appends backup prompts whose id is not yet present in the target.

    Existing prompts are never modified or removed. The target is written
    only if at least one prompt was added.

    Returns:
        int: Number of prompts added
    """
    backup_data = _load_backup_json(backup_path)
    if not isinstance(backup_data, dict) or not isinstance(
        backup_data.get("prompts"), list
    ):
        backup_prompts = []
    else:
        backup_prompts = backup_data["prompts"]

    target_data = read_prompt_store(target_path) or {"prompts": []}
    existing_ids = {
        prompt.get("id")
        for prompt in target_data["prompts"]
        if isinstance(prompt, dict) and prompt.get("id")
    }

    added = 0
    for prompt in backup_prompts:
        if not isinstance(prompt, dict):
            continue
        prompt_id = prompt.get("id")
        if not prompt_id or prompt_id in existing_ids:
            continue
        target_data["prompts"].append(prompt)
        existing_ids.add(prompt_id)
        added += 1

    if added > 0:
        write_json_atomic(target_path, target_data)
        logger.info(f"Merged {added} prompts into {Path(target_path).name}")
    return added


# ---------------------------------------------------------------------------
# MCP registry
# ---------------------------------------------------------------------------


def is_knowledge_mcp(name: str, config: Any) -> bool:
    """True if a server looks like a knowledge integration (name or command)."""
    if KNOWLEDGE_MARKER in str(name).lower():
        return True
    command = config.get("command") if isinstance(config, dict) else None
    return isinstance(command, str) and KNOWLEDGE_MARKER in command.lower()


def read_mcp_settings(path: Path) -> dict[str, Any] | None:
    path = Path(path)
    if not path.exists():
        return None
    try:
        parsed = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Failed to read MCP settings {path}: {e}")
        return None
    return parsed if isinstance(parsed, dict) else None


def merge_mcp_settings(backup_path: Path, target_path: Path) -> bool:
    """
    Merges MCP server definitions from a backup into the live registry.

    Returns:
        bool: True if the target file was written
    """
    backup_settings = _load_backup_json(backup_path)
    if not isinstance(backup_settings, dict):
        raise ConfigMergeError("mcp-settings.json is not a JSON object")

    target_path = Path(target_path)
    current = read_mcp_settings(target_path) or {}

    backup_servers = backup_settings.get("mcpServers") or {}
    merged_servers = dict(current.get("mcpServers") or {})

    added_servers = False
    for name, server_config in backup_servers.items():
        if is_knowledge_mcp(name, server_config):
            logger.debug(f"Skipping knowledge MCP server from backup: {name}")
            continue
        if name not in merged_servers:
            merged_servers[name] = server_config
            added_servers = True

    defaults = list(current.get("defaultServers") or [])
    defaults_changed = False
    for server_name in backup_settings.get("defaultServers") or []:
        server_config = backup_servers.get(server_name)
        if server_config is None or is_knowledge_mcp(server_name, server_config):
            continue
        if server_name not in defaults:
            defaults.append(server_name)
            defaults_changed = True

    merged = dict(current)
    merged["mcpServers"] = merged_servers
    merged["defaultServers"] = defaults

    settings_changed = False
    for key, value in backup_settings.items():
        if key in ("mcpServers", "defaultServers"):
            continue
        if key not in merged:
            merged[key] = value
            settings_changed = True

    if added_servers or defaults_changed or settings_changed or not target_path.exists():
        write_json_atomic(target_path, merged)
        logger.info(f"MCP settings merged into {target_path.name}")
        return True
    return False
