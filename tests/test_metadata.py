from __future__ import annotations

import pytest

from conftest import make_mp3
from dj_scheduler.errors import MetadataError
from dj_scheduler.metadata import MISSING_DURATION_MESSAGE, UNREADABLE_MESSAGE, read_track_metadata


def test_reads_duration_and_bitrate():
    meta = read_track_metadata(make_mp3(400), "Night Drive.mp3")
    assert meta.duration_seconds == 10
    assert meta.bitrate_kbps == 128


def test_title_falls_back_to_file_stem():
    assert read_track_metadata(make_mp3(400), "uploads/Night Drive.mp3").title == "Night Drive"


def test_unreadable_audio():
    with pytest.raises(MetadataError, match=UNREADABLE_MESSAGE):
        read_track_metadata(b"\x00" * 2048, "silence.mp3")


def test_sub_second_audio_has_no_usable_duration():
    with pytest.raises(MetadataError, match=MISSING_DURATION_MESSAGE):
        read_track_metadata(make_mp3(10), "blip.mp3")
