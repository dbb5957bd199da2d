"""
Tests for utils/archive.py - zip codec and zip-slip protection.

Covers:
- Encode/decode of a flat entry map
- Rejection of traversal, absolute and drive-letter entries
- Nothing is written when any entry is unsafe
- Directory-only entries
- Entries that cannot be read or written
"""

import io
import zipfile
from unittest.mock import patch

import pytest

from utils.archive import (
    extract_archive,
    read_archive,
    safe_entry_destination,
    write_archive,
)
from utils.sync_errors import ERR_NO_VALID_BACKUP, ArchiveValidationError


def _raw_zip(names_and_content) -> bytes:
    """Builds a zip with arbitrary (possibly hostile) entry names."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, content in names_and_content:
            zf.writestr(zipfile.ZipInfo(name), content)
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# write / read
# ---------------------------------------------------------------------------


class TestCodec:
    def test_write_then_read_returns_entries(self):
        entries = {
            "database/chat.db": b"\x00\x01sqlite",
            "configs/app-settings.json": b'{"theme": "dark"}',
            "manifest.json": b"{}",
        }
        data = write_archive(entries)
        assert read_archive(data) == entries

    def test_archive_uses_deflate(self):
        data = write_archive({"configs/a.json": b"a" * 10000})
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            info = zf.getinfo("configs/a.json")
        assert info.compress_type == zipfile.ZIP_DEFLATED
        assert info.compress_size < 10000

    def test_read_rejects_garbage(self):
        with pytest.raises(ArchiveValidationError) as exc_info:
            read_archive(b"not a zip at all")
        assert exc_info.value.message_key == ERR_NO_VALID_BACKUP

    def test_read_normalizes_backslashes_and_dots(self):
        data = _raw_zip([("configs\\./a.json", b"1")])
        assert read_archive(data) == {"configs/a.json": b"1"}

    def test_read_rejects_traversal(self):
        data = _raw_zip([("ok.txt", b"1"), ("../../evil.txt", b"2")])
        with pytest.raises(ArchiveValidationError):
            read_archive(data)


# ---------------------------------------------------------------------------
# Entry validation
# ---------------------------------------------------------------------------


class TestSafeEntryDestination:
    @pytest.mark.parametrize(
        "name",
        [
            "../../evil.txt",
            "configs/../../evil.txt",
            "..\\evil.txt",
            "/etc/passwd",
            "\\windows\\evil.txt",
            "C:/evil.txt",
            "c:evil.txt",
        ],
    )
    def test_rejects_unsafe_names(self, tmp_path, name):
        with pytest.raises(ArchiveValidationError):
            safe_entry_destination(name, tmp_path)

    def test_resolves_inside_root(self, tmp_path):
        destination, is_dir = safe_entry_destination("database/chat.db", tmp_path)
        assert destination == (tmp_path / "database" / "chat.db").resolve()
        assert is_dir is False

    def test_directory_entry(self, tmp_path):
        destination, is_dir = safe_entry_destination("configs/", tmp_path)
        assert is_dir is True
        assert destination == (tmp_path / "configs").resolve()

    @pytest.mark.parametrize("name", ["", "./", "/".join(["."] * 3) + "/"])
    def test_empty_entries_are_inert(self, tmp_path, name):
        assert safe_entry_destination(name, tmp_path) is None


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


class TestExtractArchive:
    def test_extracts_files(self, tmp_path):
        data = write_archive({"database/chat.db": b"db", "manifest.json": b"{}"})
        target = tmp_path / "out"

        written = extract_archive(data, target)

        assert (target / "database" / "chat.db").read_bytes() == b"db"
        assert (target / "manifest.json").read_bytes() == b"{}"
        assert len(written) == 2

    def test_extracts_from_path(self, tmp_path):
        archive = tmp_path / "backup-1.zip"
        archive.write_bytes(write_archive({"a.txt": b"a"}))

        extract_archive(archive, tmp_path / "out")

        assert (tmp_path / "out" / "a.txt").read_bytes() == b"a"

    def test_zip_slip_writes_nothing(self, tmp_path):
        target = tmp_path / "nested" / "out"
        data = _raw_zip(
            [
                ("database/chat.db", b"db"),
                ("../../evil.txt", b"pwned"),
            ]
        )

        with pytest.raises(ArchiveValidationError):
            extract_archive(data, target)

        assert not (tmp_path / "evil.txt").exists()
        assert not (tmp_path / "nested" / "evil.txt").exists()
        # Validation happens before any file is materialized
        assert not (target / "database" / "chat.db").exists()

    def test_absolute_entry_rejected(self, tmp_path):
        evil = tmp_path / "abs-evil.txt"
        data = _raw_zip([(str(evil), b"pwned")])

        with pytest.raises(ArchiveValidationError):
            extract_archive(data, tmp_path / "out")

        assert not evil.exists()

    def test_directory_entries_create_directories(self, tmp_path):
        data = _raw_zip([("configs/", b""), ("configs/a.json", b"{}")])
        target = tmp_path / "out"

        written = extract_archive(data, target)

        assert (target / "configs").is_dir()
        assert written == [(target / "configs" / "a.json").resolve()]

    @pytest.mark.parametrize(
        "entries",
        [
            [("configs/app-settings.json", b"{}"), ("configs/app-settings.json/x", b"1")],
            [("configs/app-settings.json/x", b"1"), ("configs/app-settings.json", b"{}")],
        ],
    )
    def test_file_and_directory_collision_is_invalid(self, tmp_path, entries):
        data = _raw_zip(entries)

        with pytest.raises(ArchiveValidationError) as exc_info:
            extract_archive(data, tmp_path / "out")

        assert exc_info.value.message_key == ERR_NO_VALID_BACKUP

    def test_unreadable_entry_is_invalid(self, tmp_path):
        data = write_archive({"database/chat.db": b"db"})

        with patch.object(
            zipfile.ZipFile, "read", side_effect=NotImplementedError("compression")
        ):
            with pytest.raises(ArchiveValidationError):
                extract_archive(data, tmp_path / "out")

    def test_encrypted_entry_is_invalid_on_read(self):
        data = write_archive({"database/chat.db": b"db"})

        with patch.object(
            zipfile.ZipFile, "read", side_effect=RuntimeError("password required")
        ):
            with pytest.raises(ArchiveValidationError):
                read_archive(data)
