"""
Tests for utils/backup.py and the backup half of SyncManager.

Covers:
- Backup listing order and mtime fallback
- Manifest contents and optional config entries
- Atomic publication (failed finalize keeps earlier archives intact)
"""

import json
import os
from unittest.mock import patch

import pytest

from utils.archive import read_archive
from utils.backup import (
    BackupStatus,
    SyncBackupInfo,
    add_manifest,
    backup_file_name,
    check_backup_sources,
    collect_backup_entries,
    list_backups,
    parse_backup_timestamp,
)
from utils.sync_errors import ERR_CONFIG_NOT_EXISTS, ERR_DB_NOT_EXISTS, SyncError


class TestNaming:
    def test_backup_file_name(self):
        assert backup_file_name(1700000000123) == "backup-1700000000123.zip"

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("backup-1700000000123.zip", 1700000000123),
            ("backup-abc.zip", None),
            ("notes.zip", None),
            ("backup-12.zip.tmp", None),
        ],
    )
    def test_parse_backup_timestamp(self, name, expected):
        assert parse_backup_timestamp(name) == expected

    def test_info_to_dict_uses_camel_case(self):
        info = SyncBackupInfo(file_name="backup-1.zip", created_at=1, size=10)
        assert info.to_dict() == {"fileName": "backup-1.zip", "createdAt": 1, "size": 10}


class TestListBackups:
    def test_missing_dir_is_empty(self, tmp_path):
        assert list_backups(tmp_path / "nope") == []

    def test_newest_first_and_filters(self, tmp_path):
        (tmp_path / "backup-1000.zip").write_bytes(b"a")
        (tmp_path / "backup-3000.zip").write_bytes(b"abc")
        (tmp_path / "backup-2000.zip").write_bytes(b"ab")
        (tmp_path / "backup-4000.zip.tmp").write_bytes(b"partial")
        (tmp_path / "readme.txt").write_text("x")
        (tmp_path / "folder.zip").mkdir()

        backups = list_backups(tmp_path)

        assert [b.file_name for b in backups] == [
            "backup-3000.zip",
            "backup-2000.zip",
            "backup-1000.zip",
        ]
        assert backups[0].size == 3

    def test_mtime_fallback_for_foreign_names(self, tmp_path):
        foreign = tmp_path / "manual-copy.zip"
        foreign.write_bytes(b"zip")
        os.utime(foreign, (5.0, 5.0))
        (tmp_path / "backup-1000.zip").write_bytes(b"zip")

        backups = list_backups(tmp_path)

        assert [b.file_name for b in backups] == ["manual-copy.zip", "backup-1000.zip"]
        assert backups[0].created_at == 5000


class TestCollect:
    def test_requires_database(self, sync_env):
        with pytest.raises(SyncError) as exc_info:
            check_backup_sources(sync_env.pm)
        assert exc_info.value.message_key == ERR_DB_NOT_EXISTS

    def test_requires_app_settings(self, live_state):
        live_state.pm.app_settings_path.unlink()
        with pytest.raises(SyncError) as exc_info:
            check_backup_sources(live_state.pm)
        assert exc_info.value.message_key == ERR_CONFIG_NOT_EXISTS

    def test_optional_configs_are_skipped_when_absent(self, live_state):
        live_state.pm.mcp_settings_path.unlink()

        entries = collect_backup_entries(live_state.pm)

        assert set(entries) == {
            "database/chat.db",
            "configs/app-settings.json",
            "configs/custom_prompts.json",
            "configs/system_prompts.json",
        }

    def test_manifest_lists_entries(self):
        entries = add_manifest({"database/chat.db": b"db"}, 1234)
        manifest = json.loads(entries["manifest.json"])
        assert manifest == {"version": 1, "createdAt": 1234, "files": ["database/chat.db"]}


class TestStartBackup:
    def test_archive_contains_live_files(self, live_state):
        info = live_state.manager.start_backup()

        archive = live_state.sync_folder / info.file_name
        assert archive.exists()
        assert info.size == archive.stat().st_size > 0

        entries = read_archive(archive.read_bytes())
        assert entries["database/chat.db"] == live_state.pm.db_path.read_bytes()
        assert json.loads(entries["configs/app-settings.json"])["theme"] == "dark"
        manifest = json.loads(entries["manifest.json"])
        assert manifest["createdAt"] == info.created_at
        assert "configs/mcp-settings.json" in manifest["files"]

    def test_updates_last_sync_time(self, live_state):
        info = live_state.manager.start_backup()
        assert live_state.settings.last_sync == info.created_at

    def test_disabled_sync_raises(self, live_state):
        live_state.settings.enabled = False
        with pytest.raises(SyncError):
            live_state.manager.start_backup()
        assert list(live_state.sync_folder.iterdir()) == []

    def test_no_leftover_tmp_files(self, live_state):
        live_state.manager.start_backup()
        assert list(live_state.sync_folder.glob("*.tmp")) == []

    def test_failed_finalize_keeps_previous_archive(self, live_state):
        manager = live_state.manager
        with patch("core.sync_core.time.time", return_value=1000.0):
            first = manager.start_backup()
        previous = (live_state.sync_folder / first.file_name).read_bytes()

        with patch("core.sync_core.time.time", return_value=2000.0), patch(
            "core.sync_core.publish_archive", side_effect=OSError("disk full")
        ):
            with pytest.raises(OSError):
                manager.start_backup()

        names = sorted(p.name for p in live_state.sync_folder.iterdir())
        assert names == ["backup-1000000.zip"]
        assert (live_state.sync_folder / first.file_name).read_bytes() == previous
        assert [b.file_name for b in manager.list_backups()] == ["backup-1000000.zip"]
        assert manager.current_status is BackupStatus.IDLE
        assert manager.is_backing_up is False
