"""Restore filtering logic."""

from collections.abc import Iterable

from applytrak.schemas.application import ApplicationRecord


class RestoreFilter:
    """Decides which snapshot records a restore should insert.

    With ``dedupe_by_business_key`` off every record passes. With it on,
    a record is skipped when a live record (or one already restored in the
    same run) has the same company, position and date applied.
    """

    def __init__(
        self,
        live_records: Iterable[ApplicationRecord],
        dedupe_by_business_key: bool = False,
    ):
        self.dedupe_by_business_key = dedupe_by_business_key
        self._seen = {r.business_key for r in live_records}

    def should_restore(self, record: ApplicationRecord) -> tuple[bool, str]:
        """Determine if this record should be inserted."""
        if not self.dedupe_by_business_key:
            return True, "Deduplication disabled"

        if record.business_key in self._seen:
            return (
                False,
                f"Duplicate of existing record: {record.company} - {record.position} "
                f"({record.date_applied.isoformat()})",
            )

        return True, "Passed all filters"

    def mark_restored(self, record: ApplicationRecord) -> None:
        """Remember a restored record so later duplicates in the snapshot are skipped."""
        self._seen.add(record.business_key)
