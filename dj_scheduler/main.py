from __future__ import annotations
import logging
import os
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, File, Request, UploadFile
from fastapi.responses import HTMLResponse, JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from icalendar import Calendar, Event as ICalEvent
from itsdangerous import BadSignature, SignatureExpired
from starlette.concurrency import run_in_threadpool

from .config import Settings
from .errors import ConfigurationError, EventConflict, EventNotFound, MetadataError, StorageError
from .events import EventStore, is_event_expired
from .metadata import read_track_metadata
from .models import EventRecord
from .paths import templates_dir
from .storage import DEFAULT_CONTENT_TYPE, LocalStorage, ObjectStorage, build_storage
from .utils import format_local_display, parse_utc, slugify, to_local_display_input_value
from .validation import Err, validate_event_input

logger = logging.getLogger(__name__)

router = APIRouter()
templates = Jinja2Templates(directory=templates_dir())
templates.env.filters["local_display"] = format_local_display
templates.env.filters["local_input"] = to_local_display_input_value


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _attach_storage(app: FastAPI, storage: ObjectStorage) -> None:
    app.state.storage = storage
    app.state.event_store = EventStore(storage, app.state.settings.events_object_key)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_storage(request: Request) -> ObjectStorage:
    storage = getattr(request.app.state, "storage", None)
    if storage is None:
        raise ConfigurationError("Object storage has not been configured")
    return storage


def get_store(request: Request) -> EventStore:
    store = getattr(request.app.state, "event_store", None)
    if store is None:
        raise ConfigurationError("Object storage has not been configured")
    return store


async def _read_json(request: Request):
    try:
        return await request.json()
    except ValueError:
        return None


def track_object_key(track_id: str, name: str, filename: str, fallback: str) -> str:
    ext = os.path.splitext(filename)[1] or ".mp3"
    return f"tracks/{track_id}-{slugify(name, fallback)}{ext}"


# --- Overview page ---
@router.get("/", response_class=HTMLResponse)
async def overview(request: Request, store: EventStore = Depends(get_store)):
    events = await store.list_events()
    now = datetime.now(timezone.utc)
    rows = [{"event": e, "expired": is_event_expired(e, now)} for e in events]
    return templates.TemplateResponse(request, "index.html", {"rows": rows})


# --- Events ---
@router.get("/api/events")
async def list_events(upcoming: bool = False, store: EventStore = Depends(get_store)):
    events = await store.list_events()
    if upcoming:
        now = datetime.now(timezone.utc)
        events = [e for e in events if not is_event_expired(e, now)]
    return {"events": [e.to_document() for e in events]}


@router.get("/api/events/{event_id}")
async def get_event(event_id: str, store: EventStore = Depends(get_store)):
    event = await store.get_event(event_id)
    if not event:
        raise EventNotFound(event_id)
    return {"event": event.to_document()}


@router.post("/api/create-event")
async def create_event(request: Request, store: EventStore = Depends(get_store)):
    result = validate_event_input(await _read_json(request))
    if isinstance(result, Err):
        return _error(400, result.message)
    event = await store.create_event(result.value)
    return JSONResponse(status_code=201, content={"event": event.to_document()})


@router.put("/api/events/{event_id}")
async def update_event(event_id: str, request: Request, store: EventStore = Depends(get_store)):
    result = validate_event_input(await _read_json(request))
    if isinstance(result, Err):
        return _error(400, result.message)
    event = await store.update_event(event_id, result.value)
    return {"event": event.to_document()}


@router.delete("/api/events/{event_id}")
async def delete_event(event_id: str, store: EventStore = Depends(get_store)):
    event = await store.delete_event(event_id)
    return {"event": event.to_document()}


# --- Tracks ---
@router.post("/api/upload-track")
async def upload_track(file: Optional[UploadFile] = File(None), storage: ObjectStorage = Depends(get_storage)):
    if file is None or not file.filename:
        return _error(400, "Missing MP3 file in form data.")
    if not file.filename.lower().endswith(".mp3"):
        return _error(400, "Only MP3 uploads are supported.")

    data = await file.read()
    try:
        meta = await run_in_threadpool(read_track_metadata, data, file.filename)
    except MetadataError as e:
        return _error(422, str(e))

    track_id = str(uuid.uuid4())
    key = track_object_key(track_id, meta.title, file.filename, track_id)
    content_type = file.content_type or DEFAULT_CONTENT_TYPE
    try:
        track_url = await run_in_threadpool(storage.upload_blob, key, data, content_type)
    except StorageError:
        logger.exception("Track upload failed for %s", key)
        return _error(502, "Uploading track to object storage failed.")

    body = {
        "track_id": track_id,
        "track_name": meta.title,
        "track_url": track_url,
        "track_duration_seconds": meta.duration_seconds,
    }
    if meta.bitrate_kbps:
        body["track_bitrate_kbps"] = meta.bitrate_kbps
    body["track_size_bytes"] = len(data)
    return JSONResponse(status_code=201, content=body)


@router.post("/api/upload-track-url")
async def upload_track_url(
    request: Request,
    storage: ObjectStorage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    data = await _read_json(request)
    file_name = data.get("fileName") if isinstance(data, dict) else None
    if not isinstance(file_name, str) or not file_name.strip():
        return _error(400, "fileName is required.")
    content_type = data.get("contentType") or DEFAULT_CONTENT_TYPE

    track_id = str(uuid.uuid4())
    stem = os.path.splitext(os.path.basename(file_name))[0]
    key = track_object_key(track_id, stem, file_name, "track")
    try:
        upload_url = await run_in_threadpool(
            storage.presign_upload, key, content_type, settings.presign_expires_seconds
        )
    except StorageError:
        logger.exception("Failed to create upload URL for %s", key)
        return _error(500, "Unable to create upload URL.")
    return {
        "uploadUrl": upload_url,
        "objectUrl": storage.public_url(key),
        "track_id": track_id,
        "objectKey": key,
    }


@router.put("/api/uploads/{token}")
async def redeem_upload(
    token: str,
    request: Request,
    storage: ObjectStorage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    if not isinstance(storage, LocalStorage):
        return _error(404, "Not found")
    try:
        claims = storage.load_upload_token(token, settings.presign_expires_seconds)
    except SignatureExpired:
        return _error(410, "Upload URL has expired.")
    except BadSignature:
        return _error(403, "Invalid upload URL.")
    body = await request.body()
    url = await run_in_threadpool(storage.upload_blob, claims["key"], body, claims.get("content_type"))
    return {"objectUrl": url}


# --- ICS Feed ---
def _ics_for_events(events: list[EventRecord]) -> bytes:
    cal = Calendar()
    cal.add("prodid", "-//DJ Event Scheduler//EN")
    cal.add("version", "2.0")
    now = datetime.now(timezone.utc)
    for e in events:
        ev = ICalEvent()
        ev.add("uid", f"event-{e.event_id}@dj-scheduler")
        ev.add("summary", f"{e.artist_name}: {e.event_name}")
        ev.add("dtstart", parse_utc(e.start_time_utc))
        ev.add("dtend", parse_utc(e.end_time_utc))
        ev.add("dtstamp", now)
        ev.add("description", "\n".join(f"{i}. {t.track_name}" for i, t in enumerate(e.tracks, 1)))
        cal.add_component(ev)
    return cal.to_ical()


@router.get("/ics/events.ics")
async def ics_events(store: EventStore = Depends(get_store)):
    events = await store.list_events()
    return Response(_ics_for_events(events), media_type="text/calendar; charset=utf-8")


# --- Error mapping ---
def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(EventNotFound)
    async def _not_found(request: Request, exc: EventNotFound):
        return _error(404, "Event not found.")

    @app.exception_handler(EventConflict)
    async def _conflict(request: Request, exc: EventConflict):
        return _error(409, str(exc))

    @app.exception_handler(StorageError)
    async def _storage_failed(request: Request, exc: StorageError):
        logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
        return _error(500, "Event storage is unavailable.")

    @app.exception_handler(ConfigurationError)
    async def _misconfigured(request: Request, exc: ConfigurationError):
        logger.error("Configuration error: %s", exc)
        return _error(500, "The server is not configured correctly.")


def create_app(settings: Settings | None = None, storage: ObjectStorage | None = None) -> FastAPI:
    """Build the application.

    Pass ``storage`` to use a ready-made backend; otherwise the configured one
    is constructed once during startup.
    """
    settings = settings or Settings.from_env()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "storage", None) is None:
            try:
                _attach_storage(app, build_storage(settings))
            except ConfigurationError:
                logger.exception("Object storage could not be configured")
                raise
        yield

    app = FastAPI(title="DJ Event Scheduler", lifespan=lifespan)
    app.state.settings = settings
    if storage is not None:
        _attach_storage(app, storage)
    app.include_router(router)
    _register_error_handlers(app)
    if settings.storage_backend == "local":
        app.mount("/media", StaticFiles(directory=settings.local_storage_dir, check_dir=False), name="media")
    return app


app = create_app()
