"""Media API routes: list (with sha1 filter), get, download, upload, replace, delete, SHA-1 actions."""

import logging
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_admin, get_current_user
from app.config import get_settings
from app.db.session import get_db
from app.limiter import limiter
from app.media.errors import MediaNotFoundError
from app.media.events import MediaEvents
from app.media.hash_index import SHA1_META_KEY, HashIndex
from app.media.meta_store import get_meta_for_ids
from app.media.models import BackfillResponse, MediaFile, MediaResponse, RecalculateResponse
from app.media.service import create_media, delete_media, get_media, list_media, replace_media_file
from app.media.storage import file_exists, get_attached_file
from app.users.models import User

router = APIRouter(prefix="/api/media", tags=["media"])
log = logging.getLogger(__name__)


def get_media_events(request: Request) -> MediaEvents:
    """Event source wired up in app.main."""
    return request.app.state.media_events


def get_hash_index(request: Request) -> HashIndex:
    """HashIndex wired up in app.main."""
    return request.app.state.hash_index


def _not_found(media_id: int) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Media not found: {media_id}")


async def _read_body(request: Request) -> bytes:
    """Request body as bytes; 413 when larger than max_upload_bytes."""
    limit = get_settings().max_upload_bytes
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > limit:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="File too large")
    body = await request.body()
    if len(body) > limit:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="File too large")
    return body


async def _to_responses(session: AsyncSession, items: List[MediaFile]) -> List[MediaResponse]:
    """Attach the stored sha1 (or None) to each media item."""
    hashes = await get_meta_for_ids(session, [m.id for m in items], SHA1_META_KEY)
    out = []
    for m in items:
        data = MediaResponse.model_validate(m)
        data.sha1 = hashes.get(m.id)
        out.append(data)
    return out


@router.get("", response_model=List[MediaResponse])
async def list_media_items(
    response: Response,
    session: Annotated[AsyncSession, Depends(get_db)],
    hash_index: Annotated[HashIndex, Depends(get_hash_index)],
    sha1: Annotated[Optional[str], Query(max_length=64)] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    per_page: Annotated[int, Query(ge=1, le=100)] = 10,
) -> List[MediaResponse]:
    """List media newest first. sha1 restricts to items whose content hash equals it exactly."""
    only_ids = None
    if sha1 and sha1.strip():
        only_ids = await hash_index.find_by_digest(session, sha1)
    items, total = await list_media(session, page=page, per_page=per_page, only_ids=only_ids)
    response.headers["X-Total-Count"] = str(total)
    log.info("list_media sha1=%s page=%d count=%d total=%d", sha1, page, len(items), total)
    return await _to_responses(session, items)


@router.get("/{media_id}", response_model=MediaResponse)
async def get_media_item(
    media_id: int,
    session: Annotated[AsyncSession, Depends(get_db)],
) -> MediaResponse:
    """Return one media item with its sha1."""
    try:
        media = await get_media(session, media_id)
    except MediaNotFoundError:
        raise _not_found(media_id)
    return (await _to_responses(session, [media]))[0]


@router.get("/{media_id}/file")
async def download_media_file(
    media_id: int,
    session: Annotated[AsyncSession, Depends(get_db)],
) -> FileResponse:
    """Download the attached file."""
    try:
        media = await get_media(session, media_id)
        path = await get_attached_file(session, media_id)
    except MediaNotFoundError:
        raise _not_found(media_id)
    if not file_exists(path):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    return FileResponse(path=path, filename=media.filename, media_type=media.mime_type)


@router.post("", response_model=MediaResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("120/minute")
async def upload_media(
    request: Request,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[AsyncSession, Depends(get_db)],
    events: Annotated[MediaEvents, Depends(get_media_events)],
) -> MediaResponse:
    """
    Upload a file. Query param: filename. Body: raw file bytes.
    The sha1 is computed as part of the upload.
    """
    filename = request.query_params.get("filename") or ""
    if not filename.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Query parameter 'filename' is required",
        )
    body = await _read_body(request)
    try:
        media = await create_media(session, events, filename, body, uploaded_by=current_user.email)
    except ValueError as e:
        log.warning("upload_media rejected filename=%r: %s", filename, e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    log.info("upload_media user=%s id=%s size=%d", current_user.email, media.id, len(body))
    return (await _to_responses(session, [media]))[0]


@router.put("/{media_id}/file", response_model=MediaResponse)
@limiter.limit("120/minute")
async def replace_media(
    request: Request,
    media_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[AsyncSession, Depends(get_db)],
    events: Annotated[MediaEvents, Depends(get_media_events)],
) -> MediaResponse:
    """Replace the attached file with the raw request body. The sha1 is recomputed."""
    body = await _read_body(request)
    try:
        media = await replace_media_file(session, events, media_id, body)
    except MediaNotFoundError:
        raise _not_found(media_id)
    log.info("replace_media user=%s id=%s size=%d", current_user.email, media_id, len(body))
    return (await _to_responses(session, [media]))[0]


@router.delete("/{media_id}")
@limiter.limit("120/minute")
async def delete_media_item(
    request: Request,
    media_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[AsyncSession, Depends(get_db)],
    hash_index: Annotated[HashIndex, Depends(get_hash_index)],
) -> dict:
    """Delete the media record, its file and its metadata."""
    try:
        # Committed under the lock so an in-flight hash never writes for a deleted record
        async with hash_index.locked(media_id):
            await delete_media(session, media_id)
            await session.commit()
    except MediaNotFoundError:
        raise _not_found(media_id)
    log.info("delete_media user=%s id=%s", current_user.email, media_id)
    return {"id": media_id, "deleted": True}


@router.post("/{media_id}/sha1/recalculate", response_model=RecalculateResponse)
@limiter.limit("60/minute")
async def recalculate_sha1(
    request: Request,
    media_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[AsyncSession, Depends(get_db)],
    hash_index: Annotated[HashIndex, Depends(get_hash_index)],
) -> RecalculateResponse:
    """
    Recompute the sha1 from the file on disk. status is "computed", or "not_accessible"
    when the file could not be read and the previous sha1 (possibly null) was kept.
    """
    try:
        outcome = await hash_index.compute_and_store(session, media_id, force=True)
    except MediaNotFoundError:
        raise _not_found(media_id)
    log.info(
        "recalculate_sha1 user=%s id=%s sha1=%s status=%s",
        current_user.email, media_id, outcome.digest, outcome.status.value,
    )
    return RecalculateResponse(id=media_id, sha1=outcome.digest, status=outcome.status.value)


@router.post("/sha1/backfill", response_model=BackfillResponse)
@limiter.limit("5/minute")
async def backfill_sha1(
    request: Request,
    current_user: Annotated[User, Depends(get_current_admin)],
    session: Annotated[AsyncSession, Depends(get_db)],
    hash_index: Annotated[HashIndex, Depends(get_hash_index)],
    force: Annotated[Optional[bool], Query()] = None,
) -> BackfillResponse:
    """Compute sha1 for every media item (admin only). force recomputes existing hashes too."""
    report = await hash_index.backfill(session, force=force)
    log.info("Admin %s ran sha1 backfill total=%d", current_user.email, report.total)
    return BackfillResponse(
        total=report.total,
        computed=report.computed,
        cached=report.cached,
        not_accessible=report.not_accessible,
        force=report.force,
    )
