"""Application record model."""

from datetime import date, datetime

from sqlalchemy import JSON, Date, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from applytrak.core.storage import Base, utc_now


class ApplicationRow(Base):
    """Model for the live collection of job-application records."""

    __tablename__ = "applications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    company: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    position: Mapped[str] = mapped_column(String(255), nullable=False)
    date_applied: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    employment_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="Onsite"
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Applied")

    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    salary: Mapped[str | None] = mapped_column(String(100), nullable=True)
    source: Mapped[str | None] = mapped_column(String(255), nullable=True)
    url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    attachments: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, nullable=False, index=True
    )
    synced_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
