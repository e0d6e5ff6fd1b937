"""Media file store: safe path resolution under the media root, read/write/delete of file bytes."""

import logging
import re
import unicodedata
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.media.errors import MediaNotFoundError
from app.media.models import MediaFile

log = logging.getLogger(__name__)

# Safe path segment: letters, numbers, common punctuation. No / \ (traversal).
_SAFE_SEGMENT_ASCII = re.compile(r"^[a-zA-Z0-9_. \-()+~#!&',;=\[\]@]+$")
# Give up on suffixed names after this many collisions in one month folder
_MAX_NAME_ATTEMPTS = 1000


def _is_safe_path_char(c: str) -> bool:
    """True if char is allowed in a path segment (no traversal, no control chars)."""
    if len(c) != 1:
        return False
    if c in "/\\%":
        return False
    if ord(c) < 32:
        return False
    if ("a" <= c <= "z") or ("A" <= c <= "Z") or ("0" <= c <= "9") or c in "_. -()+~#!&',;=[]@":
        return True
    cat = unicodedata.category(c)
    return cat.startswith("L") or cat.startswith("N") or cat.startswith("P")


def _sanitize_segment(segment: str) -> Optional[str]:
    """Return segment if safe, else None. Rejects empty, '..', '.', and invalid chars.
    Allows Unicode letters and numbers for international filenames.
    """
    segment = segment.strip()
    if not segment or segment in (".", ".."):
        return None
    if _SAFE_SEGMENT_ASCII.match(segment):
        return segment
    if not all(_is_safe_path_char(c) for c in segment):
        return None
    return segment


def sanitize_filename(filename: str) -> str:
    """Return the upload filename if it is a single safe segment; raise ValueError otherwise."""
    safe = _sanitize_segment(filename or "")
    if not safe:
        raise ValueError(f"Unsafe filename: {filename!r}")
    return safe


def media_root() -> Path:
    """Filesystem root of the media library."""
    return get_settings().storage_base_path


def resolve_media_path(relative_path: str) -> Path:
    """
    Resolve a path relative to the media root. Rejects traversal and unsafe names.
    relative_path uses forward slashes; segments are sanitized.
    """
    resolved = media_root()
    parts = [p for p in relative_path.replace("\\", "/").strip("/").split("/") if p]
    if not parts:
        raise ValueError("Empty media path")
    for part in parts:
        safe = _sanitize_segment(part)
        if not safe:
            raise ValueError(f"Unsafe path segment: {part!r}")
        resolved = resolved / safe
    return resolved


def allocate_upload_path(filename: str, now: Optional[datetime] = None) -> str:
    """
    Pick a free relative path "YYYY/MM/<filename>" for a new upload.
    On collision, "-1", "-2", ... is inserted before the extension.
    """
    safe = sanitize_filename(filename)
    now = now or datetime.now(timezone.utc)
    folder = f"{now:%Y}/{now:%m}"
    stem, dot, ext = safe.rpartition(".")
    if not stem:
        # No extension, or a dotfile such as ".env"
        stem, dot, ext = safe, "", ""
    candidate = f"{folder}/{safe}"
    n = 0
    while resolve_media_path(candidate).exists():
        n += 1
        if n > _MAX_NAME_ATTEMPTS:
            raise ValueError(f"No free name for {safe!r} in {folder}")
        candidate = f"{folder}/{stem}-{n}{dot}{ext}"
    return candidate


def write_file(relative_path: str, body: bytes) -> Path:
    """Write body to the media path, replacing any existing content. Returns the absolute path."""
    target = resolve_media_path(relative_path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(body)
    return target


def file_exists(path: Optional[Path]) -> bool:
    """True if path points to an existing regular file."""
    return path is not None and path.is_file()


def read_file(path: Path) -> bytes:
    """Read the whole file. Raises OSError if missing or unreadable."""
    return path.read_bytes()


async def get_attached_file(session: AsyncSession, media_id: int) -> Optional[Path]:
    """
    Return the absolute path of the file attached to a media record, or None if the
    record has no usable path. Raises MediaNotFoundError if the record does not exist.
    """
    media = await session.get(MediaFile, media_id)
    if media is None:
        raise MediaNotFoundError(media_id)
    if not media.attached_file:
        return None
    try:
        return resolve_media_path(media.attached_file)
    except ValueError as e:
        log.warning("get_attached_file media_id=%s unusable path=%r: %s", media_id, media.attached_file, e)
        return None


def delete_file(relative_path: str) -> None:
    """
    Delete a media file and remove now-empty parent folders up to (but not
    including) the media root. Missing files are ignored.
    """
    base = media_root()
    target = resolve_media_path(relative_path)
    if not target.exists():
        log.debug("delete_file: already gone %s", target)
        return
    if not target.is_file():
        raise ValueError(f"Not a file: {relative_path}")
    target.unlink()
    parent = target.parent
    while parent != base and parent.exists():
        try:
            if not any(parent.iterdir()):
                parent.rmdir()
                parent = parent.parent
            else:
                break
        except OSError:
            break
