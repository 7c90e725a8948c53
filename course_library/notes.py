from __future__ import annotations

from collections.abc import Callable
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from .store import Store


class NoteIn(BaseModel):
    title: str = Field(min_length=1)
    content: str = ""
    note_type: str = "note"
    video_id: Optional[str] = None
    course_id: Optional[str] = None
    module_id: Optional[str] = None
    timestamp: Optional[float] = Field(default=None, ge=0.0)


class NoteUpdate(BaseModel):
    title: str = Field(min_length=1)
    content: str = ""


class BookmarkIn(BaseModel):
    timestamp: float = Field(ge=0.0)
    title: str = Field(min_length=1)
    description: Optional[str] = None


def build_notes_router(*, get_store_dep: Callable[[], Store]) -> APIRouter:
    """Notes and bookmarks. Every write also lands in the activity log, best effort."""

    r = APIRouter(prefix="/api")

    @r.get("/notes")
    def all_notes(store: Store = Depends(get_store_dep)):
        return store.all_notes()

    @r.post("/notes", status_code=201)
    def create_note(payload: NoteIn, store: Store = Depends(get_store_dep)):
        note = store.create_note(**payload.model_dump())
        store.try_log_activity("note_created", note.id, "note", f"Note created: {note.title}")
        return note

    @r.put("/notes/{note_id}")
    def update_note(note_id: str, payload: NoteUpdate, store: Store = Depends(get_store_dep)):
        note = store.update_note(note_id, payload.title, payload.content)
        store.try_log_activity("note_updated", note.id, "note", f"Note updated: {note.title}")
        return note

    @r.delete("/notes/{note_id}", status_code=204)
    def delete_note(note_id: str, store: Store = Depends(get_store_dep)):
        store.delete_note(note_id)
        store.try_log_activity("note_deleted", note_id, "note", "Note deleted")

    @r.get("/videos/{video_id}/notes")
    def video_notes(video_id: str, store: Store = Depends(get_store_dep)):
        return store.notes_by_video(video_id)

    @r.get("/courses/{course_id}/notes")
    def course_notes(course_id: str, store: Store = Depends(get_store_dep)):
        return store.notes_by_course(course_id)

    @r.get("/videos/{video_id}/bookmarks")
    def video_bookmarks(video_id: str, store: Store = Depends(get_store_dep)):
        return store.video_bookmarks(video_id)

    @r.post("/videos/{video_id}/bookmarks", status_code=201)
    def create_bookmark(video_id: str, payload: BookmarkIn, store: Store = Depends(get_store_dep)):
        bookmark = store.create_bookmark(
            video_id, payload.timestamp, payload.title, payload.description
        )
        store.try_log_activity(
            "bookmark_created", bookmark.id, "bookmark", f"Bookmark created: {bookmark.title}"
        )
        return bookmark

    @r.delete("/bookmarks/{bookmark_id}", status_code=204)
    def delete_bookmark(bookmark_id: str, store: Store = Depends(get_store_dep)):
        store.delete_bookmark(bookmark_id)
        store.try_log_activity("bookmark_deleted", bookmark_id, "bookmark", "Bookmark deleted")

    return r
