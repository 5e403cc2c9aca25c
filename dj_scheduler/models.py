"""
Records stored in the events document.

The whole collection lives in one JSON array; optional track fields are left
out of the document entirely when unknown.
"""

from __future__ import annotations
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .utils import parse_utc


class TrackRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    track_id: str = Field(..., description="Opaque unique track identifier")
    track_name: str = Field(..., description="Display name of the track")
    track_url: str = Field(..., description="Public URL of the stored audio object")
    track_duration_seconds: int = Field(..., gt=0, description="Duration, whole seconds")
    track_bitrate_kbps: Optional[int] = Field(None, description="Bitrate in kbps, when known")
    track_size_bytes: Optional[int] = Field(None, description="File size in bytes, when known")


class EventDraft(BaseModel):
    """A validated event that has not been assigned an id yet."""

    event_name: str
    artist_name: str
    start_time_utc: str = Field(..., description="Canonical UTC, e.g. 2024-01-01T04:30:00+00:00")
    end_time_utc: str = Field(..., description="Canonical UTC, strictly after start_time_utc")
    tracks: list[TrackRecord] = Field(..., min_length=1, description="Tracks in upload order")

    @field_validator("start_time_utc", "end_time_utc")
    @classmethod
    def _parseable_timestamp(cls, value: str) -> str:
        try:
            parse_utc(value)
        except (ValueError, OverflowError) as e:
            raise ValueError(f"not an ISO-8601 timestamp: {value!r}") from e
        return value


class EventRecord(EventDraft):
    event_id: str = Field(..., description="UUID assigned at creation")

    @classmethod
    def from_draft(cls, event_id: str, draft: EventDraft) -> "EventRecord":
        return cls(event_id=event_id, **draft.model_dump())

    def to_document(self) -> dict:
        # Key order matches what clients have always seen in events.json
        data = self.model_dump(exclude_none=True)
        return {
            "event_id": data["event_id"],
            "event_name": data["event_name"],
            "artist_name": data["artist_name"],
            "start_time_utc": data["start_time_utc"],
            "end_time_utc": data["end_time_utc"],
            "tracks": data["tracks"],
        }
