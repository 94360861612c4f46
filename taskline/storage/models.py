"""
SQLAlchemy model for persisted task records.
"""

from datetime import datetime, timezone
from typing import Any, List, Optional

from sqlalchemy import JSON, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from taskline.storage.engine import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaskRecordModel(Base):
    """One parsed task as saved by ``add``.

    Attributes:
        id: Primary key.
        raw_text: The input exactly as the user typed it.
        normalized_key: Cache key for ``raw_text``.
        title: Parsed title.
        due_at: Parsed due instant, if any.
        priority: Parsed priority value.
        tags: JSON array of tag names.
        source_tier: Tier that produced the result.
        confidence: ``full`` or ``partial``.
        created_at: Insert timestamp.
    """

    __tablename__ = "task_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    raw_text: Mapped[str] = mapped_column(Text, nullable=False)
    normalized_key: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    title: Mapped[str] = mapped_column(Text, nullable=False, default="")
    # ISO 8601 with offset; SQLite DateTime columns drop the offset.
    due_at: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default="medium")
    tags: Mapped[List[Any]] = mapped_column(JSON, nullable=False, default=list)
    source_tier: Mapped[str] = mapped_column(String(16), nullable=False)
    confidence: Mapped[str] = mapped_column(String(16), nullable=False, default="full")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
