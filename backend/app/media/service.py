"""Media service: create from upload, replace file, delete, list. Fires media events."""

import logging
import mimetypes
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.media.errors import MediaNotFoundError
from app.media.events import MediaEvents
from app.media.meta_store import delete_all_meta
from app.media.models import MediaFile
from app.media.storage import allocate_upload_path, delete_file, write_file

log = logging.getLogger(__name__)


def guess_mime_type(filename: str) -> str:
    """MIME type from the filename extension; application/octet-stream when unknown."""
    mime, _ = mimetypes.guess_type(filename)
    return mime or "application/octet-stream"


async def get_media(session: AsyncSession, media_id: int) -> MediaFile:
    """Return media by id; raise MediaNotFoundError if it does not exist."""
    media = await session.get(MediaFile, media_id)
    if media is None:
        raise MediaNotFoundError(media_id)
    return media


async def list_all_media_ids(session: AsyncSession) -> List[int]:
    """Every media id, oldest first."""
    result = await session.execute(select(MediaFile.id).order_by(MediaFile.id))
    return list(result.scalars().all())


async def list_media(
    session: AsyncSession,
    page: int = 1,
    per_page: int = 10,
    only_ids: Optional[Iterable[int]] = None,
) -> Tuple[List[MediaFile], int]:
    """
    Return (page of media newest first, total count). When only_ids is given the
    listing is restricted to those ids (an empty collection yields no results).
    """
    stmt = select(MediaFile)
    count_stmt = select(func.count()).select_from(MediaFile)
    if only_ids is not None:
        ids = list(only_ids)
        if not ids:
            return [], 0
        stmt = stmt.where(MediaFile.id.in_(ids))
        count_stmt = count_stmt.where(MediaFile.id.in_(ids))
    total = (await session.execute(count_stmt)).scalar_one()
    stmt = stmt.order_by(MediaFile.id.desc()).offset((page - 1) * per_page).limit(per_page)
    result = await session.execute(stmt)
    return list(result.scalars().all()), total


async def create_media(
    session: AsyncSession,
    events: MediaEvents,
    filename: str,
    body: bytes,
    uploaded_by: Optional[str] = None,
) -> MediaFile:
    """
    Store an uploaded file under the media root, create its record and fire
    upload_complete. Raises ValueError for unsafe filenames.
    """
    relative = allocate_upload_path(filename)
    write_file(relative, body)
    media = MediaFile(
        filename=relative.rsplit("/", 1)[-1],
        attached_file=relative,
        mime_type=guess_mime_type(filename),
        size=len(body),
        uploaded_by=uploaded_by,
    )
    session.add(media)
    try:
        await session.flush()
    except Exception:
        delete_file(relative)
        raise
    await session.refresh(media)
    log.info("create_media id=%s path=%s size=%d", media.id, relative, len(body))
    await events.upload_complete(session, media.id)
    return media


async def replace_media_file(
    session: AsyncSession,
    events: MediaEvents,
    media_id: int,
    body: bytes,
) -> MediaFile:
    """Overwrite the file attached to media_id with body and fire file_updated."""
    media = await get_media(session, media_id)
    write_file(media.attached_file, body)
    media.size = len(body)
    await session.flush()
    log.info("replace_media_file id=%s path=%s size=%d", media.id, media.attached_file, len(body))
    await events.file_updated(session, media.id)
    return media


async def delete_media(session: AsyncSession, media_id: int) -> None:
    """
    Delete the file on disk, its metadata and the record. Caller must commit, and must
    hold HashIndex.locked(media_id) until then so no hash is stored for the record.
    """
    media = await get_media(session, media_id)
    delete_file(media.attached_file)
    await delete_all_meta(session, media_id)
    await session.delete(media)
    log.info("delete_media id=%s path=%s", media_id, media.attached_file)
