"""
SHA-1 content hash index for media files.

The digest is stored as media metadata under SHA1_META_KEY (lowercase hex) and
kept current by subscribing to upload and file-replacement events. SHA-1 is used
as a content address for deduplication lookups, not as a security guarantee.
"""

import asyncio
import enum
import hashlib
import logging
import weakref
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Optional, Set, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.media.errors import MediaNotFoundError
from app.media.events import MediaEvents
from app.media.meta_store import find_media_ids_by_meta, get_meta, set_meta
from app.media.service import list_all_media_ids
from app.media.storage import file_exists, get_attached_file, read_file

log = logging.getLogger(__name__)

SHA1_META_KEY = "sha1_hash"


class HashStatus(str, enum.Enum):
    COMPUTED = "computed"
    CACHED = "cached"
    NOT_ACCESSIBLE = "not_accessible"


@dataclass(frozen=True)
class HashOutcome:
    """What compute_and_store did. digest is the stored value afterwards (may be None)."""

    status: HashStatus
    digest: Optional[str] = None


@dataclass
class BackfillReport:
    total: int = 0
    computed: int = 0
    cached: int = 0
    not_accessible: int = 0
    force: bool = False


def compute_digest(body: bytes) -> str:
    """SHA-1 hex digest of the whole body."""
    return hashlib.sha1(body).hexdigest()


def normalize_digest(digest: Union[str, bytes]) -> str:
    """Lowercase hex form used for storage and comparison. Raw digest bytes are hex-encoded."""
    if isinstance(digest, (bytes, bytearray)):
        return bytes(digest).hex()
    return digest.strip().lower()


def _hash_file(path: Path) -> str:
    return compute_digest(read_file(path))


class HashIndex:
    """
    Maintains the SHA-1 digest of every media file and answers exact-match lookups.

    Subscribes to the given event source on construction: uploads compute the digest
    only when none exists yet, file replacements always recompute it.
    """

    def __init__(self, events: MediaEvents, backfill_force: bool = False) -> None:
        self.backfill_force = backfill_force
        self._locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()
        events.on_upload_complete(self._on_upload_complete)
        events.on_file_updated(self._on_file_updated)

    async def _on_upload_complete(self, session: AsyncSession, media_id: int) -> None:
        await self.compute_and_store(session, media_id, force=False)

    async def _on_file_updated(self, session: AsyncSession, media_id: int) -> None:
        await self.compute_and_store(session, media_id, force=True)

    @asynccontextmanager
    async def locked(self, media_id: int) -> AsyncIterator[None]:
        """Hold the per-media lock. Anything that removes a media record must run inside it."""
        lock = self._locks.get(media_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[media_id] = lock
        async with lock:
            yield

    async def get_digest(self, session: AsyncSession, media_id: int) -> Optional[str]:
        """Stored digest for media_id, or None if never computed. Never computes."""
        return await get_meta(session, media_id, SHA1_META_KEY)

    async def _set_digest(self, session: AsyncSession, media_id: int, digest: str) -> None:
        await set_meta(session, media_id, SHA1_META_KEY, digest)

    async def compute_and_store(
        self, session: AsyncSession, media_id: int, force: bool = False
    ) -> HashOutcome:
        """
        Hash the media file and store the digest.

        Without force an existing digest is trusted and the file is not read. A missing
        or unreadable file leaves any stored digest untouched and is reported as
        NOT_ACCESSIBLE rather than raised. Raises MediaNotFoundError for unknown ids,
        including a record deleted while its file was being hashed.
        Calls for the same media_id are serialized; the write is committed before the
        lock is released.
        """
        async with self.locked(media_id):
            path = await get_attached_file(session, media_id)
            if not force:
                existing = await self.get_digest(session, media_id)
                if existing is not None:
                    return HashOutcome(HashStatus.CACHED, existing)
            if not file_exists(path):
                log.warning("compute_and_store media_id=%s file not accessible: %s", media_id, path)
                return HashOutcome(HashStatus.NOT_ACCESSIBLE, await self.get_digest(session, media_id))
            try:
                digest = await asyncio.to_thread(_hash_file, path)
            except OSError as e:
                log.warning("compute_and_store media_id=%s could not read %s: %s", media_id, path, e)
                return HashOutcome(HashStatus.NOT_ACCESSIBLE, await self.get_digest(session, media_id))
            try:
                await self._set_digest(session, media_id, digest)
                await session.commit()
            except IntegrityError as e:
                # Record deleted while the file was being hashed
                await session.rollback()
                log.warning("compute_and_store media_id=%s vanished before store: %s", media_id, e.orig)
                raise MediaNotFoundError(media_id) from e
        log.info("compute_and_store media_id=%s sha1=%s force=%s", media_id, digest, force)
        return HashOutcome(HashStatus.COMPUTED, digest)

    async def recalculate(self, session: AsyncSession, media_id: int) -> Optional[str]:
        """Force recomputation and return the stored digest (None if the file was never readable)."""
        await self.compute_and_store(session, media_id, force=True)
        return await self.get_digest(session, media_id)

    async def find_by_digest(self, session: AsyncSession, digest: Union[str, bytes]) -> Set[int]:
        """Ids of media whose stored digest equals digest (exact match after lowercasing)."""
        value = normalize_digest(digest)
        if not value:
            return set()
        return await find_media_ids_by_meta(session, SHA1_META_KEY, value)

    async def backfill(self, session: AsyncSession, force: Optional[bool] = None) -> BackfillReport:
        """
        Compute digests for every existing media file. Inaccessible files are counted
        and skipped; records deleted meanwhile are ignored.
        """
        if force is None:
            force = self.backfill_force
        report = BackfillReport(force=force)
        for media_id in await list_all_media_ids(session):
            try:
                outcome = await self.compute_and_store(session, media_id, force=force)
            except MediaNotFoundError:
                log.debug("backfill: media_id=%s deleted during run", media_id)
                continue
            report.total += 1
            if outcome.status is HashStatus.COMPUTED:
                report.computed += 1
            elif outcome.status is HashStatus.CACHED:
                report.cached += 1
            else:
                report.not_accessible += 1
        log.info(
            "backfill done total=%d computed=%d cached=%d not_accessible=%d force=%s",
            report.total, report.computed, report.cached, report.not_accessible, force,
        )
        return report
