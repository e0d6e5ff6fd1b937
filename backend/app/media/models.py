"""Media SQLAlchemy models (file records and their metadata) and Pydantic schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy import BigInteger, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.session import Base


class MediaFile(Base):
    """Uploaded media file. Bytes live on disk under the media root at attached_file."""

    __tablename__ = "media_files"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    # Relative to storage_base_path, e.g. "2026/10/photo.jpg"
    attached_file: Mapped[str] = mapped_column(String(2048), nullable=False, unique=True)
    mime_type: Mapped[str] = mapped_column(String(255), nullable=False)
    size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    uploaded_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class MediaMeta(Base):
    """Key/value metadata for a media file. One row per (media_id, meta_key)."""

    __tablename__ = "media_meta"

    media_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("media_files.id", ondelete="CASCADE"), primary_key=True
    )
    meta_key: Mapped[str] = mapped_column(String(255), primary_key=True, index=True)
    meta_value: Mapped[str] = mapped_column(Text, nullable=False, index=True)


# Pydantic schemas for API
class MediaResponse(BaseModel):
    """Media item as returned by the API, including its SHA-1 (null until computed)."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    filename: str
    attached_file: str
    mime_type: str
    size: int
    uploaded_by: Optional[str] = None
    uploaded_at: datetime
    sha1: Optional[str] = None


class RecalculateResponse(BaseModel):
    """Result of an explicit SHA-1 recalculation."""

    id: int
    sha1: Optional[str] = None
    status: str  # computed | not_accessible


class BackfillResponse(BaseModel):
    """Counts from a bulk SHA-1 backfill run."""

    total: int
    computed: int
    cached: int
    not_accessible: int
    force: bool
