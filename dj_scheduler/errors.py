from __future__ import annotations
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import EventRecord


class ValidationErrorKind(StrEnum):
    INVALID_PAYLOAD = "invalid_payload"
    MISSING_FIELD = "missing_field"
    INVALID_DATE = "invalid_date"
    INVALID_RANGE = "invalid_range"
    INVALID_TRACKS = "invalid_tracks"


class ValidationError(Exception):
    """Caller input defect. Carries a single human-readable sentence."""

    def __init__(self, message: str, kind: ValidationErrorKind = ValidationErrorKind.MISSING_FIELD):
        super().__init__(message)
        self.message = message
        self.kind = kind


class InvalidInput(ValidationError):
    """Raised by the date converters for empty or unparseable values."""

    def __init__(self, message: str):
        super().__init__(message, ValidationErrorKind.INVALID_DATE)


class MetadataError(Exception):
    """Uploaded audio could not be inspected."""


class StorageError(Exception):
    """Reading or writing the backing object store failed."""


class ConfigurationError(Exception):
    """A required connection parameter is missing."""


class EventNotFound(Exception):
    def __init__(self, event_id: str):
        super().__init__(f"Event {event_id} not found.")
        self.event_id = event_id


class EventConflict(Exception):
    def __init__(self, existing: "EventRecord"):
        super().__init__(
            f"Event overlaps with '{existing.event_name}' "
            f"({existing.start_time_utc} to {existing.end_time_utc})."
        )
        self.existing = existing
