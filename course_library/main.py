from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Any, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .admin import build_admin_router
from .config import get_settings
from .errors import LibraryError, NotFoundError, StoreError
from .models import utcnow
from .notes import build_notes_router
from .player import ExternalPlayer
from .scan import ScanStats, Scanner
from .search import search_courses
from .store import Store


app = FastAPI(title="Course Library")


log = logging.getLogger(__name__)


@dataclass
class ScanMeta:
    has_scanned: bool = False
    stats: Optional[ScanStats] = None
    last_scan_at: Optional[datetime] = None


SCAN_META = ScanMeta()

_store: Optional[Store] = None
_player = ExternalPlayer()


def get_store() -> Store:
    global _store
    if _store is None:
        _store = Store.open(get_settings().database_url)
    return _store


def get_player() -> ExternalPlayer:
    return _player


@app.on_event("startup")
def on_startup() -> None:
    store = get_store()
    try:
        store.initialize_default_settings()
    except StoreError:
        log.warning("could not initialize default settings", exc_info=True)

    settings = get_settings()
    if not settings.scan_on_startup:
        return
    # If it fails, we don't want to crash the whole app; the user can rescan.
    try:
        scanner = Scanner(store, reuse_ids=settings.reuse_scanned_ids)
        scanner.rescan_courses(settings.course_roots)
        _set_scan_meta(scanner.stats)
    except Exception:
        log.exception("initial library scan failed (roots=%s)", settings.course_roots)


@app.exception_handler(LibraryError)
async def library_error_handler(request: Request, exc: LibraryError) -> JSONResponse:
    log.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def meta() -> dict[str, Any]:
    settings = get_settings()
    return {
        "course_roots": [str(p) for p in settings.course_roots],
        "scan": SCAN_META.stats,
        "has_scanned": SCAN_META.has_scanned,
        "last_scan_at": SCAN_META.last_scan_at,
    }


def _set_scan_meta(stats: ScanStats) -> None:
    SCAN_META.has_scanned = True
    SCAN_META.stats = stats
    SCAN_META.last_scan_at = utcnow()


app.include_router(
    build_admin_router(get_store_dep=get_store, meta_func=meta, set_scan_meta=_set_scan_meta)
)
app.include_router(build_notes_router(get_store_dep=get_store))


def _pairs(rows) -> list[dict[str, Any]]:
    return [{"video": video, "progress": prog} for video, prog in rows]


@app.get("/api/courses")
def list_courses(q: Optional[str] = None, store: Store = Depends(get_store)):
    """All courses, recently opened first; `q` narrows them by fuzzy name match."""
    courses = store.all_courses()
    if q:
        courses = search_courses(courses, q)
    return courses


@app.get("/api/courses/{course_id}")
def get_course(course_id: str, store: Store = Depends(get_store)):
    return store.get_course(course_id)


@app.delete("/api/courses/{course_id}", status_code=204)
def delete_course(course_id: str, store: Store = Depends(get_store)):
    course = store.get_course(course_id)
    store.delete_course(course_id)
    store.try_log_activity("course_deleted", course_id, "course", f"Course removed: {course.name}")


@app.get("/api/courses/{course_id}/modules")
def course_modules(course_id: str, store: Store = Depends(get_store)):
    store.get_course(course_id)
    return store.course_modules(course_id)


@app.post("/api/courses/{course_id}/accessed")
def course_accessed(course_id: str, store: Store = Depends(get_store)):
    return store.touch_course(course_id)


@app.get("/api/courses/{course_id}/stats")
def course_stats(course_id: str, store: Store = Depends(get_store)):
    stats = store.course_completion_stats(course_id)
    return {
        "total": stats.total,
        "completed": stats.completed,
        "in_progress": stats.in_progress,
        "percent": stats.percent,
    }


@app.get("/api/modules/{module_id}/videos")
def module_videos(module_id: str, store: Store = Depends(get_store)):
    store.get_module(module_id)
    return store.module_videos(module_id)


@app.get("/api/videos/recent")
def recent_videos(limit: int = Query(default=10, ge=1, le=100), store: Store = Depends(get_store)):
    return _pairs(store.recent_videos(limit))


@app.get("/api/videos/completed")
def completed_videos(course_id: Optional[str] = None, store: Store = Depends(get_store)):
    return _pairs(store.completed_videos(course_id))


@app.get("/api/videos/incomplete")
def incomplete_videos(course_id: Optional[str] = None, store: Store = Depends(get_store)):
    return _pairs(store.incomplete_videos(course_id))


@app.get("/api/videos/by-path")
def video_by_path(path: str, store: Store = Depends(get_store)):
    video = store.get_video_by_path(path)
    if video is None:
        raise NotFoundError("Video", path)
    return video


@app.get("/api/videos/{video_id}")
def get_video(video_id: str, store: Store = Depends(get_store)):
    return store.get_video(video_id)


class ProgressIn(BaseModel):
    current_time: float = Field(default=0.0, ge=0.0)
    duration: float = Field(default=0.0, ge=0.0)
    completed: bool = False


@app.get("/api/videos/{video_id}/progress")
def get_progress(video_id: str, store: Store = Depends(get_store)):
    store.get_video(video_id)
    return store.video_progress(video_id)


@app.put("/api/videos/{video_id}/progress")
def update_progress(video_id: str, payload: ProgressIn, store: Store = Depends(get_store)):
    return store.save_progress(video_id, payload.current_time, payload.duration, payload.completed)


@app.post("/api/videos/{video_id}/complete")
def mark_complete(video_id: str, store: Store = Depends(get_store)):
    prog = store.mark_completed(video_id, True)
    store.try_log_activity("video_completed", video_id, "video", "Video marked as completed")
    return prog


@app.post("/api/videos/{video_id}/incomplete")
def mark_incomplete(video_id: str, store: Store = Depends(get_store)):
    prog = store.mark_completed(video_id, False)
    store.try_log_activity("video_marked_incomplete", video_id, "video", "Video marked as incomplete")
    return prog


class PlayIn(BaseModel):
    start_time: Optional[float] = Field(default=None, ge=0.0)


@app.post("/api/videos/{video_id}/play")
def play_video(
    video_id: str,
    payload: Optional[PlayIn] = None,
    store: Store = Depends(get_store),
    player: ExternalPlayer = Depends(get_player),
):
    video = store.get_video(video_id)
    status = player.play(video.path, payload.start_time if payload else None)
    store.register_playback(video_id)
    store.try_log_activity("video_played", video_id, "video", video.name)
    return status


@app.post("/api/player/stop")
def stop_player(player: ExternalPlayer = Depends(get_player)):
    player.stop()
    return player.status()


@app.get("/api/player/status")
def player_status(player: ExternalPlayer = Depends(get_player)):
    return player.status()
