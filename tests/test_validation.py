from __future__ import annotations

import pytest

from conftest import make_payload, make_track
from dj_scheduler.errors import ValidationErrorKind
from dj_scheduler.validation import Err, Ok, validate_event_input


def _err(payload) -> Err:
    result = validate_event_input(payload)
    assert isinstance(result, Err), result
    return result


def test_valid_payload_is_normalized():
    result = validate_event_input(
        make_payload(
            event_name="  Sunset Sessions ",
            artist_name=" DJ Nila",
            start_time_utc="2030-01-01T14:00:00.500Z",
            end_time_utc="2030-01-01T21:30:00+05:30",
        )
    )
    assert isinstance(result, Ok)
    draft = result.value
    assert draft.event_name == "Sunset Sessions"
    assert draft.artist_name == "DJ Nila"
    assert draft.start_time_utc == "2030-01-01T14:00:00+00:00"
    assert draft.end_time_utc == "2030-01-01T16:00:00+00:00"
    assert [t.track_id for t in draft.tracks] == ["track-1", "track-2"]


def test_local_fields_take_the_fixed_offset_path():
    payload = make_payload(start_time_local="2030-01-01T19:30", end_time_local="2030-01-01T21:30")
    del payload["start_time_utc"], payload["end_time_utc"]
    result = validate_event_input(payload)
    assert isinstance(result, Ok)
    assert result.value.start_time_utc == "2030-01-01T14:00:00+00:00"
    assert result.value.end_time_utc == "2030-01-01T16:00:00+00:00"


@pytest.mark.parametrize("payload", [None, [], "event"])
def test_payload_must_be_an_object(payload):
    err = _err(payload)
    assert err.kind == ValidationErrorKind.INVALID_PAYLOAD
    assert err.message == "Invalid JSON payload."


@pytest.mark.parametrize("field", ["event_name", "artist_name"])
@pytest.mark.parametrize("value", [None, "", "   ", 42])
def test_names_are_required(field, value):
    err = _err(make_payload(**{field: value}))
    assert err.kind == ValidationErrorKind.MISSING_FIELD
    assert err.message == f"{field} is required."


def test_unparseable_start():
    err = _err(make_payload(start_time_utc="someday"))
    assert err.kind == ValidationErrorKind.INVALID_DATE
    assert err.message == "start_time_utc must be a valid date."


def test_missing_end():
    assert _err(make_payload(end_time_utc=None)).message == "end_time_utc is required."


@pytest.mark.parametrize(
    "end", ["2030-01-01T14:00:00+00:00", "2030-01-01T13:59:59+00:00", "2029-12-31T23:00:00Z"]
)
def test_end_must_be_after_start(end):
    err = _err(make_payload(end_time_utc=end))
    assert err.kind == ValidationErrorKind.INVALID_RANGE
    assert err.message == "end_time_utc must be after start_time_utc."


def test_ordering_error_wins_over_bad_tracks():
    err = _err(make_payload(end_time_utc="2030-01-01T14:00:00+00:00", tracks=[]))
    assert err.kind == ValidationErrorKind.INVALID_RANGE


@pytest.mark.parametrize("tracks", [None, [], {}, "track"])
def test_at_least_one_track(tracks):
    assert _err(make_payload(tracks=tracks)).message == "At least one track is required."


def test_missing_track_url_names_position():
    tracks = [make_track(1), make_track(2, track_url="")]
    assert _err(make_payload(tracks=tracks)).message == "Track #2 is missing track_url."


def test_first_bad_track_is_reported():
    tracks = [make_track(1, track_name=None), make_track(2, track_id="")]
    assert _err(make_payload(tracks=tracks)).message == "Track #1 is missing track_name."


def test_non_object_track():
    assert _err(make_payload(tracks=[make_track(1), "x"])).message == "Track #2 is invalid."


@pytest.mark.parametrize("duration", [0, -3, "abc", None, True, float("nan"), float("inf")])
def test_invalid_duration(duration):
    err = _err(make_payload(tracks=[make_track(1, track_duration_seconds=duration)]))
    assert err.message == "Track #1 has an invalid track_duration_seconds."


def test_duration_is_coerced_and_rounded():
    result = validate_event_input(
        make_payload(
            tracks=[
                make_track(1, track_duration_seconds="240.5"),
                make_track(2, track_duration_seconds=199.4),
            ]
        )
    )
    assert isinstance(result, Ok)
    assert [t.track_duration_seconds for t in result.value.tracks] == [241, 199]


def test_optional_numbers_are_rounded_or_omitted():
    tracks = [
        make_track(1, track_bitrate_kbps=127.6, track_size_bytes=4_000_000),
        make_track(2, track_bitrate_kbps="320", track_size_bytes=None),
    ]
    result = validate_event_input(make_payload(tracks=tracks))
    assert isinstance(result, Ok)
    first, second = result.value.tracks
    assert first.track_bitrate_kbps == 128
    assert first.track_size_bytes == 4_000_000
    assert second.track_bitrate_kbps is None
    assert second.track_size_bytes is None
