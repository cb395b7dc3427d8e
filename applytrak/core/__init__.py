"""Core application components."""

from applytrak.core.config import settings
from applytrak.core.exceptions import (
    ApplyTrakError,
    InvariantViolation,
    NotFoundError,
    StorageFailure,
)
from applytrak.core.storage import Base, async_session, init_models

__all__ = [
    "ApplyTrakError",
    "Base",
    "InvariantViolation",
    "NotFoundError",
    "StorageFailure",
    "async_session",
    "init_models",
    "settings",
]
