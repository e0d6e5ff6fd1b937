"""Generic key/value metadata per media record (attribute store)."""

from typing import Dict, List, Optional, Set

from sqlalchemy import delete, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.media.models import MediaMeta


async def get_meta(session: AsyncSession, media_id: int, key: str) -> Optional[str]:
    """Return the stored value for (media_id, key) or None."""
    result = await session.execute(
        select(MediaMeta.meta_value).where(
            MediaMeta.media_id == media_id,
            MediaMeta.meta_key == key,
        )
    )
    return result.scalar_one_or_none()


async def set_meta(session: AsyncSession, media_id: int, key: str, value: str) -> None:
    """Insert or overwrite (media_id, key) in a single statement. Caller must commit."""
    stmt = sqlite_insert(MediaMeta).values(media_id=media_id, meta_key=key, meta_value=value)
    stmt = stmt.on_conflict_do_update(
        index_elements=[MediaMeta.media_id, MediaMeta.meta_key],
        set_={"meta_value": stmt.excluded.meta_value},
    )
    await session.execute(stmt)


async def get_meta_for_ids(session: AsyncSession, media_ids: List[int], key: str) -> Dict[int, str]:
    """Return dict media_id -> value for ids that have the key. Missing ids are omitted."""
    out: Dict[int, str] = {}
    chunk = 500  # stay under SQLite parameter limit
    for i in range(0, len(media_ids), chunk):
        part = media_ids[i : i + chunk]
        if not part:
            continue
        result = await session.execute(
            select(MediaMeta.media_id, MediaMeta.meta_value).where(
                MediaMeta.meta_key == key,
                MediaMeta.media_id.in_(part),
            )
        )
        for row in result.all():
            out[row[0]] = row[1]
    return out


async def find_media_ids_by_meta(session: AsyncSession, key: str, value: str) -> Set[int]:
    """Return ids whose value for key equals value exactly."""
    result = await session.execute(
        select(MediaMeta.media_id).where(
            MediaMeta.meta_key == key,
            MediaMeta.meta_value == value,
        )
    )
    return set(result.scalars().all())


async def delete_all_meta(session: AsyncSession, media_id: int) -> None:
    """Remove every metadata row for a media record. Caller must commit."""
    await session.execute(delete(MediaMeta).where(MediaMeta.media_id == media_id))
