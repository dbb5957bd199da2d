# ------------------------------------------------------------------------------
# Archive Codec for Chat Sync
# utils/archive.py
# ------------------------------------------------------------------------------
"""
ZIP archive encoding/decoding with zip-slip protection.

Archives are a flat map of internal path -> bytes. Archive bytes are treated
as untrusted: every entry path is validated before anything is written to
disk, and a single bad entry fails the whole read.
"""

import io
import logging
import re
import zipfile
import zlib
from pathlib import Path

from utils.sync_errors import ArchiveValidationError

logger = logging.getLogger(__name__)

# Deflate level used for backup archives
COMPRESSION_LEVEL = 6

_DRIVE_PREFIX = re.compile(r"^[A-Za-z]:")

# Raised by ZipFile.read for corrupt, encrypted or unsupported entries,
# and by the filesystem when entries collide (file vs. directory)
_ENTRY_ERRORS = (
    zipfile.BadZipFile,
    zlib.error,
    OSError,
    RuntimeError,
    NotImplementedError,
)


def write_archive(entries: dict[str, bytes]) -> bytes:
    """
    Encodes entries into ZIP bytes, preserving insertion order.

    Args:
        entries: Mapping of internal path -> content

    Returns:
        bytes: The complete ZIP archive
    """
    buffer = io.BytesIO()
    with zipfile.ZipFile(
        buffer,
        mode="w",
        compression=zipfile.ZIP_DEFLATED,
        compresslevel=COMPRESSION_LEVEL,
    ) as zf:
        for name, content in entries.items():
            zf.writestr(name, content)
    return buffer.getvalue()


def _safe_segments(entry_name: str) -> tuple[list[str], bool] | None:
    """
    Validates an entry name and returns (segments, is_directory).

    Returns None for entries that carry no path at all (e.g. "" or "./").
    Raises ArchiveValidationError for absolute or traversing paths.
    """
    normalized = entry_name.replace("\\", "/")
    if not normalized:
        return None

    if _DRIVE_PREFIX.match(normalized) or normalized.startswith("/"):
        raise ArchiveValidationError(f"Absolute path blocked: {entry_name}")

    segments = []
    for segment in normalized.split("/"):
        if not segment or segment == ".":
            continue
        if segment == "..":
            raise ArchiveValidationError(f"Path traversal blocked: {entry_name}")
        segments.append(segment)

    if not segments:
        return None

    return segments, normalized.endswith("/")


def safe_entry_destination(entry_name: str, target_dir: Path) -> tuple[Path, bool] | None:
    """
    Resolves an entry name to its destination inside target_dir.

    Returns:
        tuple: (destination, is_directory), or None if the entry is inert

    Raises:
        ArchiveValidationError: if the entry would land outside target_dir
    """
    parsed = _safe_segments(entry_name)
    if parsed is None:
        return None
    segments, is_directory = parsed

    root = Path(target_dir).resolve()
    destination = root.joinpath(*segments).resolve()
    if destination != root and root not in destination.parents:
        raise ArchiveValidationError(f"Entry escapes extraction root: {entry_name}")

    return destination, is_directory


def _open_zip(data: bytes) -> zipfile.ZipFile:
    try:
        return zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as e:
        raise ArchiveValidationError(f"Invalid zip archive: {e}") from e


def read_archive(data: bytes) -> dict[str, bytes]:
    """
    Decodes ZIP bytes into a mapping of normalized path -> content.

    All entry names are validated before any content is returned.
    Directory entries are omitted.
    """
    result = {}
    with _open_zip(data) as zf:
        infos = zf.infolist()
        parsed = [(info, _safe_segments(info.filename)) for info in infos]

        for info, entry in parsed:
            if entry is None:
                continue
            segments, is_directory = entry
            if is_directory:
                continue
            try:
                result["/".join(segments)] = zf.read(info)
            except _ENTRY_ERRORS as e:
                raise ArchiveValidationError(
                    f"Cannot read entry {info.filename}: {e}"
                ) from e
    return result


def extract_archive(source: bytes | str | Path, target_dir: str | Path) -> list[Path]:
    """
    Extracts an archive into target_dir.

    Every entry is validated first; nothing is written unless the whole
    archive is safe.

    Args:
        source: Archive bytes or a path to a zip file
        target_dir: Extraction root (created if missing)

    Returns:
        list[Path]: Files written

    Raises:
        ArchiveValidationError: for unsafe names, unreadable entries, or
            entries that cannot be materialized under target_dir
    """
    if isinstance(source, (str, Path)):
        data = Path(source).read_bytes()
    else:
        data = source

    target = Path(target_dir)
    target.mkdir(parents=True, exist_ok=True)

    written = []
    with _open_zip(data) as zf:
        plan = []
        for info in zf.infolist():
            entry = safe_entry_destination(info.filename, target)
            if entry is not None:
                plan.append((info, entry[0], entry[1]))

        for info, destination, is_directory in plan:
            try:
                if is_directory:
                    destination.mkdir(parents=True, exist_ok=True)
                    continue
                content = zf.read(info)
                destination.parent.mkdir(parents=True, exist_ok=True)
                destination.write_bytes(content)
            except _ENTRY_ERRORS as e:
                raise ArchiveValidationError(
                    f"Cannot extract entry {info.filename}: {e}"
                ) from e
            written.append(destination)

    logger.debug(f"Extracted {len(written)} files to {target}")
    return written
