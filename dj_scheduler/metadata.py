from __future__ import annotations
import io
import logging
from dataclasses import dataclass
from pathlib import PurePath
from typing import Optional

from mutagen import MutagenError
from mutagen.easyid3 import EasyID3
from mutagen.mp3 import MP3

from .errors import MetadataError
from .utils import round_half_up

logger = logging.getLogger(__name__)

UNREADABLE_MESSAGE = "Unable to read MP3 metadata. Please check the file."
MISSING_DURATION_MESSAGE = "Track duration metadata is missing."


@dataclass(frozen=True)
class TrackMetadata:
    title: str
    duration_seconds: int
    bitrate_kbps: Optional[int]


def _title_from_tags(audio: MP3) -> str:
    if not audio.tags:
        return ""
    values = audio.tags.get("title") or []
    return values[0].strip() if values else ""


def read_track_metadata(data: bytes, filename: str) -> TrackMetadata:
    """Inspect MP3 bytes for title, duration and bitrate."""
    try:
        audio = MP3(io.BytesIO(data), ID3=EasyID3)
    except MutagenError as e:
        logger.warning("MP3 metadata parsing failed for %s: %s", filename, e)
        raise MetadataError(UNREADABLE_MESSAGE) from e

    length = getattr(audio.info, "length", 0) or 0
    duration = round_half_up(length)
    if duration <= 0:
        raise MetadataError(MISSING_DURATION_MESSAGE)

    bitrate = round_half_up((getattr(audio.info, "bitrate", 0) or 0) / 1000)
    title = _title_from_tags(audio) or PurePath(filename).stem or "Untitled Track"
    return TrackMetadata(title=title, duration_seconds=duration, bitrate_kbps=bitrate or None)
