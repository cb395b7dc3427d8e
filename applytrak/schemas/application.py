"""Schemas for job-application records."""

import hashlib
from datetime import UTC, date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Fields a user edits; everything else is bookkeeping owned by the store
BUSINESS_FIELDS = (
    "company",
    "position",
    "date_applied",
    "status",
    "employment_type",
    "location",
    "salary",
    "source",
    "url",
    "notes",
    "attachments",
)


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


class ApplicationStatus(str, Enum):
    """Pipeline stage of an application."""

    APPLIED = "Applied"
    INTERVIEW = "Interview"
    OFFER = "Offer"
    REJECTED = "Rejected"


class WorkArrangement(str, Enum):
    """Where the job is performed."""

    ONSITE = "Onsite"
    REMOTE = "Remote"
    HYBRID = "Hybrid"


class Attachment(BaseModel):
    """File attached to an application."""

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    name: str = Field(..., min_length=1)
    media_type: str = Field(default="application/octet-stream")
    size: int = Field(default=0, ge=0, description="Size in bytes")
    content: str = Field(default="", description="Base64 encoded data")
    uploaded_at: datetime | None = None

    @field_validator("uploaded_at")
    @classmethod
    def _normalize_uploaded_at(cls, value: datetime | None) -> datetime | None:
        return to_naive_utc(value)

    @property
    def content_hash(self) -> str:
        return hashlib.sha256(self.content.encode("utf-8")).hexdigest()

    @property
    def identity(self) -> tuple[str, str]:
        """Identity plus content hash; two attachments are the same iff equal."""
        return (self.id or self.name, self.content_hash)


class ApplicationFields(BaseModel):
    """User-editable fields shared by create requests and records."""

    company: str = Field(..., min_length=1, max_length=255)
    position: str = Field(..., min_length=1, max_length=255)
    date_applied: date
    status: ApplicationStatus = ApplicationStatus.APPLIED
    employment_type: WorkArrangement = WorkArrangement.ONSITE
    location: str | None = None
    salary: str | None = None
    source: str | None = Field(default=None, description="Job board or referral")
    url: str | None = Field(default=None, description="Job posting URL")
    notes: str | None = None
    attachments: list[Attachment] = Field(default_factory=list)


class ApplicationCreate(ApplicationFields):
    """Request to add a new application record."""

    @field_validator("company", "position")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()


class ApplicationUpdate(BaseModel):
    """Partial update; only explicitly set fields are applied."""

    company: str | None = Field(default=None, min_length=1, max_length=255)
    position: str | None = Field(default=None, min_length=1, max_length=255)
    date_applied: date | None = None
    status: ApplicationStatus | None = None
    employment_type: WorkArrangement | None = None
    location: str | None = None
    salary: str | None = None
    source: str | None = None
    url: str | None = None
    notes: str | None = None
    attachments: list[Attachment] | None = None
    synced_at: datetime | None = None

    @field_validator("company", "position")
    @classmethod
    def _not_blank(cls, value: str | None) -> str:
        if value is None or not value.strip():
            raise ValueError("must not be blank")
        return value.strip()

    @field_validator("date_applied", "status", "employment_type")
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError("cannot be cleared")
        return value

    @field_validator("synced_at")
    @classmethod
    def _normalize_synced_at(cls, value: datetime | None) -> datetime | None:
        return to_naive_utc(value)


class ApplicationRecord(ApplicationFields):
    """The unit of synchronization."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str = Field(..., min_length=1)
    created_at: datetime
    updated_at: datetime
    synced_at: datetime | None = None

    @field_validator("created_at", "updated_at", "synced_at")
    @classmethod
    def _normalize_timestamps(cls, value: datetime | None) -> datetime | None:
        return to_naive_utc(value)

    @property
    def business_key(self) -> tuple[str, str, date]:
        return (
            self.company.strip().lower(),
            self.position.strip().lower(),
            self.date_applied,
        )

    def to_create(self) -> ApplicationCreate:
        """Business fields only, as a request to insert a fresh record."""
        return ApplicationCreate.model_validate(
            self.model_dump(include=set(BUSINESS_FIELDS))
        )
