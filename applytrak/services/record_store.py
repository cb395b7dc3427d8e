"""Local persistence for the live application collection."""

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from applytrak.core.exceptions import NotFoundError, StorageFailure
from applytrak.core.storage import async_session, utc_now
from applytrak.models.application import ApplicationRow
from applytrak.schemas.application import (
    ApplicationCreate,
    ApplicationRecord,
    ApplicationUpdate,
    Attachment,
)

logger = logging.getLogger(__name__)

Patch = ApplicationUpdate | Mapping[str, Any]


def _next_timestamp(previous: datetime | None) -> datetime:
    """Current time, nudged forward so it is strictly after ``previous``."""
    now = utc_now()
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now


def _column_values(values: Mapping[str, Any]) -> dict[str, Any]:
    """Map validated field values onto column-storable values."""
    columns = {}
    for key, value in values.items():
        if key == "attachments":
            value = [
                Attachment.model_validate(item).model_dump(mode="json")
                for item in value or []
            ]
        elif isinstance(value, Enum):
            value = value.value
        columns[key] = value
    return columns


def _patch_values(patch: Patch) -> dict[str, Any]:
    if not isinstance(patch, ApplicationUpdate):
        patch = ApplicationUpdate.model_validate(dict(patch))
    return patch.model_dump(exclude_unset=True)


def _to_record(row: ApplicationRow) -> ApplicationRecord:
    return ApplicationRecord.model_validate(row)


def _to_row(record: ApplicationRecord) -> ApplicationRow:
    values = _column_values(record.model_dump())
    return ApplicationRow(**values)


class RecordWriter:
    """Store operations for a caller already holding the store's lock.

    Obtained from :meth:`RecordStore.exclusive`; stops working once the
    ``async with`` block that produced it exits.
    """

    def __init__(self, store: "RecordStore"):
        self._store = store
        self._active = True

    def _check(self) -> "RecordStore":
        if not self._active:
            raise RuntimeError("RecordWriter used outside its exclusive() block")
        return self._store

    async def get_all(self) -> list[ApplicationRecord]:
        return await self._check()._get_all()

    async def get(self, record_id: str) -> ApplicationRecord:
        return await self._check()._get(record_id)

    async def add(self, data: ApplicationCreate | Mapping[str, Any]) -> ApplicationRecord:
        return await self._check()._add(data)

    async def update(self, record_id: str, patch: Patch) -> ApplicationRecord:
        return await self._check()._update(record_id, patch)

    async def update_many(
        self, patches: Mapping[str, Patch]
    ) -> list[ApplicationRecord]:
        return await self._check()._update_many(patches)

    async def remove(self, record_id: str) -> None:
        await self._check()._remove(record_id)

    async def replace_all(self, records: Sequence[ApplicationRecord]) -> None:
        await self._check()._replace_all(records)


class RecordStore:
    """Sole owner of the mutable application collection.

    Every public call is serialized through one ``asyncio.Lock``, so no
    caller can observe a half-applied write. Compound operations hold the
    lock for their whole duration via :meth:`exclusive`.
    """

    def __init__(self, session_factory=async_session):
        self._session_factory = session_factory
        self._lock = asyncio.Lock()
        self._last_created: datetime | None = None

    @property
    def is_locked(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[RecordWriter]:
        """Hold the store's serialization lock for a compound operation."""
        async with self._lock:
            writer = RecordWriter(self)
            try:
                yield writer
            finally:
                writer._active = False

    async def get_all(self) -> list[ApplicationRecord]:
        async with self._lock:
            return await self._get_all()

    async def get(self, record_id: str) -> ApplicationRecord:
        async with self._lock:
            return await self._get(record_id)

    async def add(self, data: ApplicationCreate | Mapping[str, Any]) -> ApplicationRecord:
        """Insert a new record with a fresh identity and timestamps."""
        async with self._lock:
            return await self._add(data)

    async def update(self, record_id: str, patch: Patch) -> ApplicationRecord:
        """Apply a partial update and bump ``updated_at``."""
        async with self._lock:
            return await self._update(record_id, patch)

    async def update_many(self, patches: Mapping[str, Patch]) -> list[ApplicationRecord]:
        """Apply several partial updates in one transaction, or none of them."""
        async with self._lock:
            return await self._update_many(patches)

    async def remove(self, record_id: str) -> None:
        async with self._lock:
            await self._remove(record_id)

    async def replace_all(self, records: Sequence[ApplicationRecord]) -> None:
        """Atomically replace the whole collection, keeping the given identities."""
        async with self._lock:
            await self._replace_all(records)

    async def _get_all(self) -> list[ApplicationRecord]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(ApplicationRow).order_by(
                        ApplicationRow.created_at, ApplicationRow.id
                    )
                )
                return [_to_record(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise StorageFailure("read", str(e)) from e

    async def _get(self, record_id: str) -> ApplicationRecord:
        try:
            async with self._session_factory() as session:
                row = await session.get(ApplicationRow, record_id)
                if row is None:
                    raise NotFoundError(record_id)
                return _to_record(row)
        except SQLAlchemyError as e:
            raise StorageFailure("read", str(e)) from e

    async def _add(self, data: ApplicationCreate | Mapping[str, Any]) -> ApplicationRecord:
        if not isinstance(data, ApplicationCreate):
            data = ApplicationCreate.model_validate(dict(data))

        # Creation order must survive the created_at, id ordering of get_all
        now = _next_timestamp(self._last_created)
        self._last_created = now
        row = ApplicationRow(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            synced_at=None,
            **_column_values(data.model_dump()),
        )
        try:
            async with self._session_factory() as session:
                session.add(row)
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageFailure("add", str(e)) from e

        logger.debug(f"Added application {row.id}: {row.company} - {row.position}")
        return _to_record(row)

    def _apply_patch(self, row: ApplicationRow, values: Mapping[str, Any]) -> None:
        for key, value in _column_values(values).items():
            setattr(row, key, value)
        row.updated_at = _next_timestamp(row.updated_at)

    async def _update(self, record_id: str, patch: Patch) -> ApplicationRecord:
        values = _patch_values(patch)
        try:
            async with self._session_factory() as session:
                row = await session.get(ApplicationRow, record_id)
                if row is None:
                    raise NotFoundError(record_id)
                self._apply_patch(row, values)
                await session.commit()
                return _to_record(row)
        except SQLAlchemyError as e:
            raise StorageFailure("update", str(e)) from e

    async def _update_many(
        self, patches: Mapping[str, Patch]
    ) -> list[ApplicationRecord]:
        prepared = {record_id: _patch_values(p) for record_id, p in patches.items()}
        try:
            async with self._session_factory() as session:
                rows = []
                for record_id, values in prepared.items():
                    row = await session.get(ApplicationRow, record_id)
                    if row is None:
                        # Leaving the block without commit discards earlier patches
                        raise NotFoundError(record_id)
                    self._apply_patch(row, values)
                    rows.append(row)
                await session.commit()
                return [_to_record(row) for row in rows]
        except SQLAlchemyError as e:
            raise StorageFailure("update", str(e)) from e

    async def _remove(self, record_id: str) -> None:
        try:
            async with self._session_factory() as session:
                row = await session.get(ApplicationRow, record_id)
                if row is None:
                    raise NotFoundError(record_id)
                await session.delete(row)
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageFailure("remove", str(e)) from e

        logger.debug(f"Removed application {record_id}")

    async def _replace_all(self, records: Sequence[ApplicationRecord]) -> None:
        try:
            async with self._session_factory() as session:
                await session.execute(delete(ApplicationRow))
                session.add_all([_to_row(record) for record in records])
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageFailure("replace_all", str(e)) from e

        logger.info(f"Replaced application collection with {len(records)} records")


# Global record store instance
record_store = RecordStore()


async def get_record_store() -> RecordStore:
    """Dependency to get the record store."""
    return record_store
