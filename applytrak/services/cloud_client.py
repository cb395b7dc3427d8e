import asyncio
import logging
import random
from typing import Any

import httpx
from pydantic import ValidationError

from applytrak.core.config import settings
from applytrak.schemas.application import ApplicationRecord

logger = logging.getLogger(__name__)

# Cloud column name -> record field
CLOUD_COLUMNS = {
    "id": "id",
    "company": "company",
    "position": "position",
    "date_applied": "date_applied",
    "status": "status",
    "type": "employment_type",
    "location": "location",
    "salary": "salary",
    "job_source": "source",
    "job_url": "url",
    "notes": "notes",
    "attachments": "attachments",
    "created_at": "created_at",
    "updated_at": "updated_at",
    "synced_at": "synced_at",
}

# Cloud attachment key -> Attachment field
ATTACHMENT_KEYS = {
    "id": "id",
    "name": "name",
    "type": "media_type",
    "size": "size",
    "data": "content",
    "uploaded_at": "uploaded_at",
    "uploadedAt": "uploaded_at",
}


class CloudAPIError(Exception):
    """Cloud data source error."""

    def __init__(
        self, status_code: int, message: str, response_data: dict | None = None
    ):
        self.status_code = status_code
        self.message = message
        self.response_data = response_data or {}
        super().__init__(message)


def _map_attachment(item: dict[str, Any]) -> dict[str, Any]:
    return {ATTACHMENT_KEYS[k]: v for k, v in item.items() if k in ATTACHMENT_KEYS}


def map_cloud_row(row: dict[str, Any]) -> ApplicationRecord:
    """Translate one cloud row into an application record."""
    values = {
        field: row[column]
        for column, field in CLOUD_COLUMNS.items()
        if row.get(column) is not None
    }
    values["attachments"] = [_map_attachment(a) for a in values.get("attachments") or []]
    return ApplicationRecord.model_validate(values)


class CloudClient:
    """Read-only client for the cloud copy of the application collection."""

    GATEWAY_ERRORS = (502, 503, 504)

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        max_retries: int = 3,
        base_delay: float = 1.0,
    ):
        self.base_url = base_url or settings.cloud_api_url
        api_key = api_key or settings.cloud_api_key
        headers = {"Accept": "application/json"}
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"

        self.client = httpx.AsyncClient(
            base_url=self.base_url or "",
            headers=headers,
            timeout=httpx.Timeout(timeout or settings.cloud_timeout_seconds),
            transport=transport,
        )
        self.max_retries = max_retries
        self.base_delay = base_delay

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        await self.client.aclose()

    def _backoff(self, attempt: int) -> float:
        return self.base_delay * (2**attempt) + random.uniform(0, self.base_delay)

    async def _make_request(self, method: str, endpoint: str, **kwargs) -> Any:
        """Make HTTP request with retry on gateway and network errors."""
        if not self.base_url:
            raise CloudAPIError(503, "Cloud data source is not configured")

        retries = 0
        while True:
            try:
                response = await self.client.request(method, endpoint, **kwargs)
            except (httpx.ConnectError, httpx.TimeoutException) as e:
                retries += 1
                if retries > self.max_retries:
                    logger.error(f"Network error after {self.max_retries} retries: {e!s}")
                    raise
                delay = self._backoff(retries)
                logger.warning(
                    f"Network error. Retry {retries}/{self.max_retries} after {delay:.2f}s for {method} {endpoint}"
                )
                await asyncio.sleep(delay)
                continue

            if response.status_code in self.GATEWAY_ERRORS:
                retries += 1
                if retries > self.max_retries:
                    logger.error(
                        f"Gateway error {response.status_code} after {self.max_retries} retries"
                    )
                    raise CloudAPIError(
                        response.status_code,
                        f"Gateway error after {self.max_retries} retries",
                        {"status_code": response.status_code},
                    )
                delay = self._backoff(retries)
                logger.warning(
                    f"Gateway error {response.status_code}. Retry {retries}/{self.max_retries} after {delay:.2f}s"
                )
                await asyncio.sleep(delay)
                continue

            if response.is_error:
                try:
                    error_data = response.json()
                except ValueError:
                    error_data = {"message": response.text[:500]}
                logger.error(
                    f"Cloud API error: {response.status_code} - {error_data}, "
                    f"Endpoint: {endpoint}, Method: {method}"
                )
                raise CloudAPIError(response.status_code, str(error_data), error_data)

            try:
                return response.json()
            except ValueError as e:
                raise CloudAPIError(
                    502,
                    f"Invalid JSON response: {e!s}",
                    {"response_text": response.text[:500]},
                ) from e

    async def fetch_applications(self) -> list[ApplicationRecord]:
        """Fetch the cloud application collection.

        Rows that do not form a valid record are skipped with a warning.
        """
        rows = await self._make_request(
            "GET", "/applications", params={"select": "*", "order": "created_at.asc"}
        )
        if not isinstance(rows, list):
            raise CloudAPIError(502, "Expected a list of applications", {"body": rows})

        records = []
        for row in rows:
            try:
                records.append(map_cloud_row(row))
            except (ValidationError, AttributeError, TypeError) as e:
                logger.warning(f"Skipping unreadable cloud row {row!r:.80}: {e}")

        logger.info(f"Fetched {len(records)} applications from cloud")
        return records
