from pathlib import Path


# Directory structure:
# data/
# ├── app_db/
# │   ├── chat.db
# │   ├── chat.db-wal
# │   └── chat.db-shm
# ├── app-settings.json
# ├── custom_prompts.json
# ├── system_prompts.json
# └── mcp-settings.json
#
# Archive layout (backup-<millis>.zip):
# ├── manifest.json
# ├── database/chat.db
# └── configs/*.json

DB_FILENAME = "chat.db"

# Internal archive paths; fixed for compatibility with existing backups
ZIP_PATHS = {
    "db": "database/chat.db",
    "app_settings": "configs/app-settings.json",
    "custom_prompts": "configs/custom_prompts.json",
    "system_prompts": "configs/system_prompts.json",
    "mcp_settings": "configs/mcp-settings.json",
    "manifest": "manifest.json",
}


class SyncPathManager:
    def __init__(self, data_dir: str | Path, temp_dir: str | Path | None = None):
        self.data_dir = Path(data_dir)
        self.db_dir = self.data_dir / "app_db"
        self.db_path = self.db_dir / DB_FILENAME
        self.app_settings_path = self.data_dir / "app-settings.json"
        self.custom_prompts_path = self.data_dir / "custom_prompts.json"
        self.system_prompts_path = self.data_dir / "system_prompts.json"
        self.mcp_settings_path = self.data_dir / "mcp-settings.json"
        self.temp_dir = Path(temp_dir) if temp_dir else self.data_dir / "restore_tmp"

    # -------------------------------------------------------------------------
    # Live file mapping
    # -------------------------------------------------------------------------
    def live_paths(self) -> dict[str, Path]:
        """Maps each archive key (see ZIP_PATHS) to its live file."""
        return {
            "db": self.db_path,
            "app_settings": self.app_settings_path,
            "custom_prompts": self.custom_prompts_path,
            "system_prompts": self.system_prompts_path,
            "mcp_settings": self.mcp_settings_path,
        }

    def get_db_sidecar_paths(self) -> list[Path]:
        """Returns the WAL and shared-memory files next to the database."""
        return [
            self.db_path.with_name(f"{DB_FILENAME}-wal"),
            self.db_path.with_name(f"{DB_FILENAME}-shm"),
        ]

    # -------------------------------------------------------------------------
    # Temp Path Methods
    # -------------------------------------------------------------------------
    def get_restore_tmp_dir(self) -> Path:
        """Returns the restore temp directory, creates if needed."""
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        return self.temp_dir
