"""Validation logic for backups and records."""

from dataclasses import dataclass, field

from applytrak.schemas.application import ApplicationRecord
from applytrak.schemas.backup import BackupOrigin, BackupSnapshot


@dataclass
class ValidationResult:
    """Result of validation process."""

    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def error(self) -> str | None:
        return "; ".join(self.errors) if self.errors else None


def is_restorable_record(record: ApplicationRecord) -> bool:
    """A record can be restored only with a non-blank company and position."""
    return bool(record.company.strip()) and bool(record.position.strip())


def validate_snapshot(snapshot: BackupSnapshot) -> ValidationResult:
    """Validate a snapshot before restoring from it."""
    errors = []
    warnings = []

    if not snapshot.id:
        errors.append("Missing snapshot ID")

    if snapshot.record_count != len(snapshot.records):
        errors.append(
            f"Count mismatch: snapshot declares {snapshot.record_count} "
            f"records but holds {len(snapshot.records)}"
        )

    if not snapshot.records:
        errors.append("No applications to recover")

    invalid = [r.id for r in snapshot.records if not is_restorable_record(r)]
    if invalid:
        errors.append(f"Invalid application data in {len(invalid)} record(s)")

    if snapshot.origin == BackupOrigin.LOCAL_CACHE:
        warnings.append("Local-cache snapshots do not carry attachments")

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)
