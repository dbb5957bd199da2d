"""Shared fixtures for the sync backup/restore tests."""

import json
import sqlite3
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from core.interfaces import SettingsStoreInterface
from core.sync_core import SyncManager
from utils.path_manager import SyncPathManager

CHAT_SCHEMA = """
    CREATE TABLE conversations (
        conv_id TEXT PRIMARY KEY,
        title TEXT,
        created_at INTEGER
    );
    CREATE TABLE messages (
        msg_id TEXT PRIMARY KEY,
        conversation_id TEXT,
        content TEXT
    );
    CREATE TABLE message_attachments (
        message_id TEXT,
        attachment_id TEXT
    );
"""


def create_chat_db(path: Path, conversations=(), messages=(), attachments=()) -> Path:
    """Creates a chat database with the standard schema and given rows."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    conn.executescript(CHAT_SCHEMA)
    conn.executemany("INSERT INTO conversations VALUES (?, ?, ?)", conversations)
    conn.executemany("INSERT INTO messages VALUES (?, ?, ?)", messages)
    conn.executemany("INSERT INTO message_attachments VALUES (?, ?)", attachments)
    conn.commit()
    conn.close()
    return path


def sqlcipher_available() -> bool:
    conn = sqlite3.connect(":memory:")
    try:
        row = conn.execute("PRAGMA cipher_version").fetchone()
    finally:
        conn.close()
    return bool(row and row[0])


requires_plain_sqlite = pytest.mark.skipif(
    sqlcipher_available(), reason="linked SQLite supports encryption"
)


def count_rows(path: Path, table: str) -> int:
    conn = sqlite3.connect(path)
    try:
        return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
    finally:
        conn.close()


def write_json(path: Path, data) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path


def read_json(path: Path):
    return json.loads(Path(path).read_text(encoding="utf-8"))


class FakeSettingsStore(SettingsStoreInterface):
    def __init__(self, sync_folder: Path, enabled: bool = True, last_sync: int = 0):
        self.sync_folder = Path(sync_folder)
        self.enabled = enabled
        self.last_sync = last_sync

    def get_sync_enabled(self) -> bool:
        return self.enabled

    def get_sync_folder_path(self) -> str:
        return str(self.sync_folder)

    def get_last_sync_time(self) -> int:
        return self.last_sync

    def set_last_sync_time(self, timestamp: int) -> None:
        self.last_sync = timestamp


@pytest.fixture
def sync_env(tmp_path):
    """A SyncManager over a temp data dir with mocked collaborators."""
    pm = SyncPathManager(tmp_path / "data", tmp_path / "tmp")
    sync_folder = tmp_path / "sync"
    sync_folder.mkdir()
    settings = FakeSettingsStore(sync_folder, enabled=True, last_sync=1111)

    db = MagicMock()
    observer = MagicMock()
    window = MagicMock()

    manager = SyncManager(
        settings,
        db,
        pm,
        observer=observer,
        window_layer=window,
        backup_delay=0.05,
        folder_opener=MagicMock(),
    )
    yield SimpleNamespace(
        pm=pm,
        settings=settings,
        sync_folder=sync_folder,
        db=db,
        observer=observer,
        window=window,
        manager=manager,
    )
    manager.destroy()


@pytest.fixture
def live_state(sync_env):
    """Populates the live data dir with a database and all config stores."""
    pm = sync_env.pm
    create_chat_db(
        pm.db_path,
        conversations=[(f"conv-{i}", f"Conversation {i}", 1000 + i) for i in range(5)],
        messages=[("msg-1", "conv-0", "hello")],
    )
    write_json(
        pm.app_settings_path,
        {"theme": "dark", "syncEnabled": True, "syncFolderPath": str(sync_env.sync_folder)},
    )
    write_json(pm.custom_prompts_path, {"prompts": [{"id": "custom-1", "title": "A"}]})
    write_json(pm.system_prompts_path, {"prompts": [{"id": "system-1", "title": "S"}]})
    write_json(
        pm.mcp_settings_path,
        {"mcpServers": {"fs": {"command": "npx fs"}}, "defaultServers": ["fs"]},
    )
    return sync_env
