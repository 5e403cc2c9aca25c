"""Normalization and validation of create/update event payloads.

``validate_event_input`` never raises for bad input: it returns ``Ok`` with an
``EventDraft`` or ``Err`` with a single message, so call sites branch on the
outcome explicitly. The first violation wins; no multi-error report is built.
"""

from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Any, Union

from .errors import ValidationError, ValidationErrorKind as Kind
from .models import EventDraft, TrackRecord
from .utils import convert_local_input_to_utc, normalize_utc_date_string, parse_utc, round_half_up

REQUIRED_TRACK_FIELDS = ("track_id", "track_name", "track_url")
OPTIONAL_TRACK_NUMBERS = ("track_bitrate_kbps", "track_size_bytes")


@dataclass(frozen=True)
class Ok:
    value: EventDraft


@dataclass(frozen=True)
class Err:
    kind: Kind
    message: str


ValidationResult = Union[Ok, Err]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _coerce_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def ensure_text(payload: dict, field: str) -> str:
    value = payload.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required.", Kind.MISSING_FIELD)
    return value.strip()


def ensure_iso_date(payload: dict, field: str) -> str:
    """Canonical UTC for ``<name>_utc``, or for ``<name>_local`` when that is supplied."""
    local_field = field.replace("_utc", "_local")
    local_value = payload.get(local_field)
    if isinstance(local_value, str) and local_value.strip():
        return convert_local_input_to_utc(local_value, local_field)
    return normalize_utc_date_string(payload.get(field), field)


def ensure_track(track: Any, position: int) -> TrackRecord:
    if not isinstance(track, dict):
        raise ValidationError(f"Track #{position} is invalid.", Kind.INVALID_TRACKS)
    for field in REQUIRED_TRACK_FIELDS:
        value = track.get(field)
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"Track #{position} is missing {field}.", Kind.INVALID_TRACKS)

    duration = _coerce_number(track.get("track_duration_seconds"))
    if duration is None or duration <= 0:
        raise ValidationError(
            f"Track #{position} has an invalid track_duration_seconds.", Kind.INVALID_TRACKS
        )

    extras = {
        field: round_half_up(track[field])
        for field in OPTIONAL_TRACK_NUMBERS
        if _is_number(track.get(field))
    }
    return TrackRecord(
        track_id=track["track_id"],
        track_name=track["track_name"],
        track_url=track["track_url"],
        track_duration_seconds=max(round_half_up(duration), 1),
        **extras,
    )


def ensure_tracks(tracks: Any) -> list[TrackRecord]:
    if not isinstance(tracks, list) or not tracks:
        raise ValidationError("At least one track is required.", Kind.INVALID_TRACKS)
    return [ensure_track(track, index + 1) for index, track in enumerate(tracks)]


def _validate(payload: Any) -> EventDraft:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload.", Kind.INVALID_PAYLOAD)

    event_name = ensure_text(payload, "event_name")
    artist_name = ensure_text(payload, "artist_name")
    start = ensure_iso_date(payload, "start_time_utc")
    end = ensure_iso_date(payload, "end_time_utc")
    if parse_utc(end) <= parse_utc(start):
        raise ValidationError("end_time_utc must be after start_time_utc.", Kind.INVALID_RANGE)

    return EventDraft(
        event_name=event_name,
        artist_name=artist_name,
        start_time_utc=start,
        end_time_utc=end,
        tracks=ensure_tracks(payload.get("tracks")),
    )


def validate_event_input(payload: Any) -> ValidationResult:
    try:
        return Ok(_validate(payload))
    except ValidationError as e:
        return Err(e.kind, e.message)
