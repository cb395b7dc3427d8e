"""Database models."""

from applytrak.models.application import ApplicationRow
from applytrak.models.backup import BackupRow

__all__ = [
    "ApplicationRow",
    "BackupRow",
]
