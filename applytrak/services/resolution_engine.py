"""Resolution strategies for sync conflicts."""

import logging
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime

from applytrak.core.exceptions import InvariantViolation
from applytrak.core.storage import utc_now
from applytrak.schemas.application import ApplicationRecord, Attachment
from applytrak.schemas.conflict import (
    ConflictResolutionStrategy,
    DataConflict,
    StrategyKind,
)

logger = logging.getLogger(__name__)

StrategyLike = ConflictResolutionStrategy | StrategyKind | str


def merge_attachments(
    local: Iterable[Attachment], remote: Iterable[Attachment]
) -> list[Attachment]:
    """Union of both sides keyed by identity and content hash, local order first."""
    merged = []
    seen = set()
    for attachment in [*local, *remote]:
        if attachment.identity in seen:
            continue
        seen.add(attachment.identity)
        merged.append(attachment)
    return merged


def strategy_kind(strategy: StrategyLike) -> StrategyKind:
    """Resolve a strategy choice to its closed tag, once."""
    if isinstance(strategy, ConflictResolutionStrategy):
        return strategy.strategy
    try:
        return StrategyKind(strategy)
    except ValueError as e:
        raise InvariantViolation(f"unknown strategy {strategy!r}") from e


class ResolutionEngine:
    """Turns conflicts plus a strategy into the records to persist.

    Pure: no I/O and no mutation of its inputs. The only clock read is the
    ``synced_at`` stamp of ``local-wins``.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock

    def validate(self, conflict: DataConflict) -> None:
        """Raise InvariantViolation if the conflict is structurally malformed."""
        if not conflict.conflict_fields:
            raise InvariantViolation(f"conflict {conflict.id} has no conflict fields")
        if "id" in conflict.conflict_fields:
            raise InvariantViolation(f"conflict {conflict.id} lists the identity field")
        if conflict.local_data.id != conflict.remote_data.id:
            raise InvariantViolation(
                f"conflict {conflict.id} pairs different records "
                f"({conflict.local_data.id} vs {conflict.remote_data.id})"
            )
        known = ApplicationRecord.model_fields
        unknown = [f for f in conflict.conflict_fields if f not in known]
        if unknown:
            raise InvariantViolation(
                f"conflict {conflict.id} references fields absent from both "
                f"snapshots: {', '.join(unknown)}"
            )

    def resolve(self, conflict: DataConflict, strategy: StrategyLike) -> ApplicationRecord:
        """Resolve a single conflict."""
        kind = strategy_kind(strategy)
        self.validate(conflict)
        return self._apply(conflict, kind)

    def resolve_all(
        self, conflicts: Sequence[DataConflict], strategy: StrategyLike
    ) -> list[ApplicationRecord]:
        """Apply one strategy uniformly; any malformed conflict aborts the batch."""
        kind = strategy_kind(strategy)
        for conflict in conflicts:
            self.validate(conflict)

        resolved = [self._apply(conflict, kind) for conflict in conflicts]
        logger.info(f"Resolved {len(resolved)} conflicts with {kind.value}")
        return resolved

    def _apply(self, conflict: DataConflict, kind: StrategyKind) -> ApplicationRecord:
        local = conflict.local_data
        remote = conflict.remote_data

        if kind is StrategyKind.LOCAL_WINS:
            # Local becomes the basis of the next upstream push
            return local.model_copy(update={"synced_at": self._clock()})

        if kind is StrategyKind.REMOTE_WINS:
            return remote.model_copy(
                update={"updated_at": max(local.updated_at, remote.updated_at)}
            )

        if kind is StrategyKind.MERGE:
            return self._merge(conflict)

        raise InvariantViolation(f"unknown strategy {kind!r}")

    def _merge(self, conflict: DataConflict) -> ApplicationRecord:
        local = conflict.local_data
        remote = conflict.remote_data

        # Assumption: equal updated_at favours remote
        newer = remote if remote.updated_at >= local.updated_at else local

        changes = {}
        for field in conflict.conflict_fields:
            if field == "attachments":
                changes[field] = merge_attachments(local.attachments, remote.attachments)
            elif field == "updated_at":
                changes[field] = max(local.updated_at, remote.updated_at)
            else:
                changes[field] = getattr(newer, field)

        return local.model_copy(update=changes)
