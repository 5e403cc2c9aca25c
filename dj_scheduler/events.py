from __future__ import annotations
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Iterable, Optional

from pydantic import ValidationError as RecordError
from starlette.concurrency import run_in_threadpool

from .errors import EventConflict, EventNotFound, StorageError
from .models import EventDraft, EventRecord
from .storage import ObjectStorage
from .utils import overlaps, parse_utc

logger = logging.getLogger(__name__)

EVENTS_OBJECT_KEY = "json/events.json"


def find_overlapping_event(
    events: Iterable[EventRecord],
    start_iso: str,
    end_iso: str,
    exclude_id: Optional[str] = None,
) -> Optional[EventRecord]:
    """First event whose [start, end) window intersects the given one.

    Back-to-back events sharing a boundary do not conflict.
    """
    start = parse_utc(start_iso)
    end = parse_utc(end_iso)
    for event in events:
        if exclude_id and event.event_id == exclude_id:
            continue
        try:
            existing_start = parse_utc(event.start_time_utc)
            existing_end = parse_utc(event.end_time_utc)
        except ValueError:
            logger.warning("Skipping event %s with unparseable times", event.event_id)
            continue
        if overlaps(start, end, existing_start, existing_end):
            return event
    return None


def is_event_expired(event: EventRecord, now: Optional[datetime] = None) -> bool:
    now = now or datetime.now(timezone.utc)
    return parse_utc(event.end_time_utc) <= now


def dump_events(events: list[EventRecord]) -> str:
    return json.dumps([e.to_document() for e in events], indent=2, ensure_ascii=False) + "\n"


def load_events(raw: str) -> list[EventRecord]:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise StorageError(f"events document is not valid JSON: {e}") from e
    if not isinstance(data, list):
        logger.warning("events document is a %s, not an array; treating it as empty", type(data).__name__)
        return []
    try:
        return [EventRecord.model_validate(item) for item in data]
    except RecordError as e:
        raise StorageError(f"events document holds an invalid record: {e}") from e


class EventStore:
    """Read-modify-write access to the events document.

    Each mutation reads the whole array, changes it in memory and overwrites
    the document once. Concurrent writers are not coordinated: the last write
    wins.
    """

    def __init__(self, storage: ObjectStorage, key: str = EVENTS_OBJECT_KEY):
        self.storage = storage
        self.key = key

    async def read_events(self) -> list[EventRecord]:
        raw = await run_in_threadpool(self.storage.read_text_object, self.key)
        if not raw:
            return []
        return load_events(raw)

    async def persist_events(self, events: list[EventRecord]) -> None:
        await run_in_threadpool(self.storage.write_text_object, self.key, dump_events(events))
        logger.info("Persisted %d events to %s", len(events), self.key)

    async def list_events(self) -> list[EventRecord]:
        return await self.read_events()

    async def get_event(self, event_id: str) -> Optional[EventRecord]:
        for event in await self.read_events():
            if event.event_id == event_id:
                return event
        return None

    async def create_event(self, draft: EventDraft) -> EventRecord:
        events = await self.read_events()
        clash = find_overlapping_event(events, draft.start_time_utc, draft.end_time_utc)
        if clash:
            raise EventConflict(clash)
        event = EventRecord.from_draft(str(uuid.uuid4()), draft)
        events.append(event)
        await self.persist_events(events)
        return event

    async def update_event(self, event_id: str, draft: EventDraft) -> EventRecord:
        events = await self.read_events()
        index = next((i for i, e in enumerate(events) if e.event_id == event_id), None)
        if index is None:
            raise EventNotFound(event_id)
        clash = find_overlapping_event(events, draft.start_time_utc, draft.end_time_utc, exclude_id=event_id)
        if clash:
            raise EventConflict(clash)
        events[index] = EventRecord.from_draft(event_id, draft)
        await self.persist_events(events)
        return events[index]

    async def delete_event(self, event_id: str) -> EventRecord:
        events = await self.read_events()
        removed = next((e for e in events if e.event_id == event_id), None)
        if removed is None:
            raise EventNotFound(event_id)
        await self.persist_events([e for e in events if e.event_id != event_id])
        urls = [t.track_url for t in removed.tracks]
        try:
            await run_in_threadpool(self.storage.delete_objects_by_url, urls)
        except StorageError:
            logger.exception("Event %s deleted but its track objects could not be removed", event_id)
        return removed
