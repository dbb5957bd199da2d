import json
import logging
import threading
from pathlib import Path
from typing import Any

from core.interfaces import SettingsStoreInterface
from utils.config_merge import write_json_atomic

logger = logging.getLogger(__name__)


def load_app_settings(settings_path: Path) -> dict[str, Any]:
    """Loads app settings from JSON; creates file if missing."""
    settings_path = Path(settings_path)
    settings_path.parent.mkdir(parents=True, exist_ok=True)
    if not settings_path.exists():
        settings_path.write_text("{}", encoding="utf-8")
        return {}
    raw = settings_path.read_text(encoding="utf-8").strip()
    if not raw:
        return {}
    try:
        data = json.loads(raw)
        return data if isinstance(data, dict) else {}
    except json.JSONDecodeError:
        logger.warning(f"Unreadable settings file {settings_path}, using defaults")
        return {}


def save_app_settings(settings_dict: dict[str, Any], settings_path: Path) -> None:
    """Saves app settings as JSON."""
    write_json_atomic(Path(settings_path), settings_dict)


class AppSettingsStore(SettingsStoreInterface):
    """
    Sync settings backed by app-settings.json.

    Every read goes to disk, so values written by a restore are picked up
    without reloading the store.
    """

    def __init__(self, settings_path: str | Path, default_sync_folder: str | Path):
        self.settings_path = Path(settings_path)
        self.default_sync_folder = str(default_sync_folder)
        self._lock = threading.Lock()

    def _get(self, key: str, default: Any = None) -> Any:
        return load_app_settings(self.settings_path).get(key, default)

    def _set(self, key: str, value: Any) -> None:
        with self._lock:
            settings = load_app_settings(self.settings_path)
            settings[key] = value
            save_app_settings(settings, self.settings_path)

    def get_sync_enabled(self) -> bool:
        return bool(self._get("syncEnabled", False))

    def set_sync_enabled(self, enabled: bool) -> None:
        self._set("syncEnabled", bool(enabled))

    def get_sync_folder_path(self) -> str:
        return self._get("syncFolderPath") or self.default_sync_folder

    def set_sync_folder_path(self, folder: str | Path) -> None:
        self._set("syncFolderPath", str(folder))

    def get_last_sync_time(self) -> int:
        return int(self._get("lastSyncTime", 0) or 0)

    def set_last_sync_time(self, timestamp: int) -> None:
        self._set("lastSyncTime", int(timestamp))
