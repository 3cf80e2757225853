from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from bizdesk.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StoredDocument(Base):
    __tablename__ = "bizdesk_document"

    path: Mapped[str] = mapped_column(Text, primary_key=True)
    collection: Mapped[str] = mapped_column(String(128), nullable=False)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )


Index("ix_bizdesk_document_collection", StoredDocument.collection)
