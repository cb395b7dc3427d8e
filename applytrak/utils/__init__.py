"""Utility functions and classes."""

from applytrak.utils.filters import RestoreFilter
from applytrak.utils.validators import ValidationResult, validate_snapshot

__all__ = ["RestoreFilter", "ValidationResult", "validate_snapshot"]
