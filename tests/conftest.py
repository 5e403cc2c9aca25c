"""Shared fixtures: a local-disk storage backend per test and payload builders."""

from __future__ import annotations

import pytest

from dj_scheduler.config import Settings
from dj_scheduler.events import EventStore
from dj_scheduler.main import create_app
from dj_scheduler.storage import LocalStorage

# MPEG-1 Layer III, 128 kbps, 44.1 kHz, joint stereo, no CRC; 417 bytes per frame.
_MP3_FRAME_HEADER = b"\xff\xfb\x90\x64"
_MP3_FRAME_SIZE = 417


def make_mp3(frames: int = 400) -> bytes:
    """Silent CBR MP3 stream. 400 frames is ~10.4 seconds at 128 kbps."""
    frame = _MP3_FRAME_HEADER + b"\x00" * (_MP3_FRAME_SIZE - len(_MP3_FRAME_HEADER))
    return frame * frames


def make_track(n: int = 1, **overrides) -> dict:
    track = {
        "track_id": f"track-{n}",
        "track_name": f"Track {n}",
        "track_url": f"http://test/media/tracks/track-{n}.mp3",
        "track_duration_seconds": 240,
    }
    track.update(overrides)
    return track


def make_payload(**overrides) -> dict:
    payload = {
        "event_name": "Sunset Sessions",
        "artist_name": "DJ Nila",
        "start_time_utc": "2030-01-01T14:00:00+00:00",
        "end_time_utc": "2030-01-01T16:00:00+00:00",
        "tracks": [make_track(1), make_track(2)],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        storage_backend="local",
        local_storage_dir=str(tmp_path / "store"),
        base_url="http://test",
        secret_key="test-secret",
    )


@pytest.fixture
def storage(settings) -> LocalStorage:
    return LocalStorage(settings.local_storage_dir, settings.base_url, settings.secret_key)


@pytest.fixture
def store(storage) -> EventStore:
    return EventStore(storage)


@pytest.fixture
def app(settings, storage):
    return create_app(settings, storage)
