"""Backup snapshot model."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from applytrak.core.storage import Base, utc_now


class BackupRow(Base):
    """Model for persisted database-origin backup snapshots."""

    __tablename__ = "backups"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    reason: Mapped[str] = mapped_column(String(20), nullable=False, default="manual")
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, nullable=False, index=True
    )
    record_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_modified: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    # Full serialized records, attachments included
    payload: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
