"""Media lifecycle events. Subscribers register on an instance; nothing is global."""

import inspect
import logging
from typing import Any, Callable, Dict, List

from sqlalchemy.ext.asyncio import AsyncSession

log = logging.getLogger(__name__)

UPLOAD_COMPLETE = "upload_complete"
FILE_UPDATED = "file_updated"

MediaEventHandler = Callable[[AsyncSession, int], Any]


class MediaEvents:
    """Event source for media uploads and file replacements. Handlers run in order, awaited."""

    def __init__(self) -> None:
        self._handlers: Dict[str, List[MediaEventHandler]] = {
            UPLOAD_COMPLETE: [],
            FILE_UPDATED: [],
        }

    def on(self, event_type: str, handler: MediaEventHandler) -> None:
        if event_type not in self._handlers:
            raise ValueError(f"Unknown media event: {event_type!r}")
        self._handlers[event_type].append(handler)

    def off(self, event_type: str, handler: MediaEventHandler) -> None:
        try:
            self._handlers.get(event_type, []).remove(handler)
        except ValueError:
            pass

    def on_upload_complete(self, handler: MediaEventHandler) -> None:
        self.on(UPLOAD_COMPLETE, handler)

    def on_file_updated(self, handler: MediaEventHandler) -> None:
        self.on(FILE_UPDATED, handler)

    async def emit(self, event_type: str, session: AsyncSession, media_id: int) -> None:
        """Call every handler for event_type with (session, media_id)."""
        handlers = list(self._handlers.get(event_type, []))
        log.debug("emit %s media_id=%s handlers=%d", event_type, media_id, len(handlers))
        for handler in handlers:
            result = handler(session, media_id)
            if inspect.isawaitable(result):
                await result

    async def upload_complete(self, session: AsyncSession, media_id: int) -> None:
        await self.emit(UPLOAD_COMPLETE, session, media_id)

    async def file_updated(self, session: AsyncSession, media_id: int) -> None:
        await self.emit(FILE_UPDATED, session, media_id)
