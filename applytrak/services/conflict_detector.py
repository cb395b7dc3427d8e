"""Detection of divergences between local and remote records."""

import logging
import uuid
from collections.abc import Iterable
from datetime import date, datetime
from enum import Enum
from typing import Any

from applytrak.core.exceptions import InvariantViolation
from applytrak.core.storage import utc_now
from applytrak.schemas.application import ApplicationRecord, Attachment, to_naive_utc
from applytrak.schemas.conflict import DataConflict

logger = logging.getLogger(__name__)

# Rendering order of conflict fields; resolution screens and tests rely on it
CANONICAL_FIELD_ORDER = (
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
    "created_at",
    "updated_at",
    "synced_at",
)

TIMESTAMP_FIELDS = frozenset({"date_applied", "created_at", "updated_at", "synced_at"})

UNSET = object()


def normalize_value(value: Any) -> Any:
    """Collapse absent and empty-string values to one UNSET sentinel."""
    if value is None or value == "":
        return UNSET
    if isinstance(value, Enum):
        return value.value
    return value


def as_instant(value: date | datetime | str | None) -> Any:
    """Parse a date or timestamp into a comparable instant."""
    if value is None or value == "":
        return UNSET
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(value, datetime):
        return to_naive_utc(value)
    return value


def attachment_keys(attachments: Iterable[Attachment] | None) -> frozenset[tuple[str, str]]:
    return frozenset(a.identity for a in attachments or ())


def field_differs(field: str, local: ApplicationRecord, remote: ApplicationRecord) -> bool:
    """Whether ``field`` differs between the two records under canonical equality."""
    local_value = getattr(local, field)
    remote_value = getattr(remote, field)

    if field in TIMESTAMP_FIELDS:
        return as_instant(local_value) != as_instant(remote_value)
    if field == "attachments":
        return attachment_keys(local_value) != attachment_keys(remote_value)
    return normalize_value(local_value) != normalize_value(remote_value)


class ConflictDetector:
    """Computes conflict descriptors for identity-matched record pairs."""

    def __init__(self, clock=utc_now):
        self._clock = clock

    def differing_fields(
        self, local: ApplicationRecord, remote: ApplicationRecord
    ) -> list[str]:
        return [
            field
            for field in CANONICAL_FIELD_ORDER
            if field_differs(field, local, remote)
        ]

    def detect(
        self, local: ApplicationRecord, remote: ApplicationRecord
    ) -> DataConflict | None:
        """Return a conflict if any non-identity field differs, else None."""
        if local.id != remote.id:
            raise InvariantViolation(
                f"cannot compare records with different identities "
                f"({local.id} vs {remote.id})"
            )

        fields = self.differing_fields(local, remote)
        if not fields:
            return None

        return DataConflict(
            id=str(uuid.uuid4()),
            local_data=local,
            remote_data=remote,
            conflict_fields=fields,
            detected_at=self._clock(),
        )

    def detect_all(
        self,
        local_records: Iterable[ApplicationRecord],
        remote_records: Iterable[ApplicationRecord],
    ) -> list[DataConflict]:
        """Pair records by identity and collect every divergent pair.

        Records present on only one side are not conflicts.
        """
        remote_by_id = {record.id: record for record in remote_records}
        conflicts = []
        paired = 0

        for local in local_records:
            remote = remote_by_id.get(local.id)
            if remote is None:
                continue
            paired += 1
            conflict = self.detect(local, remote)
            if conflict is not None:
                conflicts.append(conflict)

        logger.info(
            f"Compared {paired} record pairs: {len(conflicts)} conflicts detected"
        )
        return conflicts
