"""Shared database handle.

One `Store` exists per process. Every public method opens a fresh session while
holding the store lock, so concurrent API requests are serialized and each
write is committed on its own.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Optional, TypeVar

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, select

from . import progress
from .db import make_engine, migrate
from .errors import InvalidInputError, NotFoundError, StoreError
from .models import (
    SETTING_TYPES,
    ActivityLog,
    Course,
    Module,
    UserNote,
    UserSetting,
    Video,
    VideoBookmark,
    VideoProgress,
    decode_setting,
    utcnow,
)


log = logging.getLogger(__name__)

T = TypeVar("T", bound=SQLModel)


DEFAULT_SETTINGS: list[tuple[str, str, str]] = [
    ("theme", "dark", "string"),
    ("auto_play_next", "true", "boolean"),
    ("playback_speed", "1.0", "number"),
    ("volume", "0.8", "number"),
    ("auto_save_progress", "true", "boolean"),
    ("show_subtitles", "false", "boolean"),
    ("language", "en", "string"),
]


class Store:
    def __init__(self, engine: Engine):
        self.engine = engine
        self._lock = threading.Lock()

    @classmethod
    def open(cls, database_url: Optional[str] = None) -> "Store":
        engine = make_engine(database_url)
        migrate(engine)
        return cls(engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        with self._lock:
            with Session(self.engine, expire_on_commit=False) as session:
                try:
                    yield session
                except SQLAlchemyError as exc:
                    session.rollback()
                    reason = getattr(exc, "orig", None) or exc
                    raise StoreError(f"database error: {reason}") from exc

    def _merge(self, obj: T) -> T:
        with self.session() as s:
            merged = s.merge(obj)
            s.commit()
            return merged

    # -- courses / modules / videos

    def upsert_course(self, course: Course) -> Course:
        return self._merge(course)

    def upsert_module(self, module: Module) -> Module:
        return self._merge(module)

    def upsert_video(self, video: Video) -> Video:
        return self._merge(video)

    def get_course(self, course_id: str) -> Course:
        with self.session() as s:
            course = s.get(Course, course_id)
        if course is None:
            raise NotFoundError("Course", course_id)
        return course

    def get_course_by_path(self, path: str) -> Optional[Course]:
        with self.session() as s:
            return s.exec(select(Course).where(Course.path == path)).first()

    def get_module(self, module_id: str) -> Module:
        with self.session() as s:
            module = s.get(Module, module_id)
        if module is None:
            raise NotFoundError("Module", module_id)
        return module

    def get_video(self, video_id: str) -> Video:
        with self.session() as s:
            video = s.get(Video, video_id)
        if video is None:
            raise NotFoundError("Video", video_id)
        return video

    def get_video_by_path(self, path: str) -> Optional[Video]:
        with self.session() as s:
            return s.exec(select(Video).where(Video.path == path)).first()

    def all_courses(self) -> list[Course]:
        # SQLite sorts NULL lowest, so never-opened courses land after the rest.
        with self.session() as s:
            stmt = select(Course).order_by(Course.last_accessed.desc(), Course.name)
            return list(s.exec(stmt).all())

    def course_modules(self, course_id: str) -> list[Module]:
        with self.session() as s:
            stmt = select(Module).where(Module.course_id == course_id).order_by(Module.order_index)
            return list(s.exec(stmt).all())

    def module_videos(self, module_id: str) -> list[Video]:
        with self.session() as s:
            stmt = select(Video).where(Video.module_id == module_id).order_by(Video.order_index)
            return list(s.exec(stmt).all())

    def course_videos(self, course_id: str) -> list[Video]:
        with self.session() as s:
            stmt = select(Video).where(Video.course_id == course_id)
            return list(s.exec(stmt).all())

    def touch_course(self, course_id: str) -> Course:
        with self.session() as s:
            course = s.get(Course, course_id)
            if course is None:
                raise NotFoundError("Course", course_id)
            course.last_accessed = utcnow()
            s.add(course)
            s.commit()
            return course

    def _delete(self, model: type[SQLModel], entity: str, key: str) -> None:
        with self.session() as s:
            obj = s.get(model, key)
            if obj is None:
                raise NotFoundError(entity, key)
            s.delete(obj)
            s.commit()

    def delete_course(self, course_id: str) -> None:
        """Remove a course; modules, videos and their user data go with it."""
        self._delete(Course, "Course", course_id)

    def delete_module(self, module_id: str) -> None:
        self._delete(Module, "Module", module_id)

    def delete_video(self, video_id: str) -> None:
        self._delete(Video, "Video", video_id)

    # -- progress

    def video_progress(self, video_id: str) -> Optional[VideoProgress]:
        with self.session() as s:
            return progress.get_progress(s, video_id)

    def save_progress(
        self, video_id: str, current_time: float, duration: float, completed: bool = False
    ) -> VideoProgress:
        with self.session() as s:
            return progress.save_progress(s, video_id, current_time, duration, completed)

    def register_playback(self, video_id: str) -> VideoProgress:
        with self.session() as s:
            return progress.register_playback(s, video_id)

    def mark_completed(self, video_id: str, completed: bool = True) -> VideoProgress:
        with self.session() as s:
            return progress.mark_completed(s, video_id, completed)

    def recent_videos(self, limit: int = 10) -> list[tuple[Video, VideoProgress]]:
        with self.session() as s:
            return progress.recent_videos(s, limit)

    def completed_videos(self, course_id: Optional[str] = None) -> list[tuple[Video, VideoProgress]]:
        with self.session() as s:
            return progress.completed_videos(s, course_id)

    def incomplete_videos(
        self, course_id: Optional[str] = None
    ) -> list[tuple[Video, Optional[VideoProgress]]]:
        with self.session() as s:
            return progress.incomplete_videos(s, course_id)

    def course_completion_stats(self, course_id: str) -> progress.CompletionStats:
        with self.session() as s:
            return progress.course_completion_stats(s, course_id)

    # -- notes

    def create_note(
        self,
        title: str,
        content: str = "",
        note_type: str = "note",
        video_id: Optional[str] = None,
        course_id: Optional[str] = None,
        module_id: Optional[str] = None,
        timestamp: Optional[float] = None,
    ) -> UserNote:
        note = UserNote(
            video_id=video_id,
            course_id=course_id,
            module_id=module_id,
            timestamp=timestamp,
            title=title,
            content=content,
            note_type=note_type,
        )
        with self.session() as s:
            s.add(note)
            s.commit()
            return note

    def update_note(self, note_id: str, title: str, content: str) -> UserNote:
        with self.session() as s:
            note = s.get(UserNote, note_id)
            if note is None:
                raise NotFoundError("Note", note_id)
            note.title = title
            note.content = content
            note.updated_at = utcnow()
            s.add(note)
            s.commit()
            return note

    def delete_note(self, note_id: str) -> None:
        self._delete(UserNote, "Note", note_id)

    def _notes(self, *criteria) -> list[UserNote]:
        with self.session() as s:
            stmt = select(UserNote)
            if criteria:
                stmt = stmt.where(*criteria)
            stmt = stmt.order_by(UserNote.timestamp, UserNote.created_at)
            return list(s.exec(stmt).all())

    def notes_by_video(self, video_id: str) -> list[UserNote]:
        return self._notes(UserNote.video_id == video_id)

    def notes_by_course(self, course_id: str) -> list[UserNote]:
        return self._notes(UserNote.course_id == course_id)

    def all_notes(self) -> list[UserNote]:
        return self._notes()

    # -- bookmarks

    def create_bookmark(
        self, video_id: str, timestamp: float, title: str, description: Optional[str] = None
    ) -> VideoBookmark:
        bookmark = VideoBookmark(
            video_id=video_id, timestamp=timestamp, title=title, description=description
        )
        with self.session() as s:
            s.add(bookmark)
            s.commit()
            return bookmark

    def delete_bookmark(self, bookmark_id: str) -> None:
        self._delete(VideoBookmark, "Bookmark", bookmark_id)

    def video_bookmarks(self, video_id: str) -> list[VideoBookmark]:
        with self.session() as s:
            stmt = (
                select(VideoBookmark)
                .where(VideoBookmark.video_id == video_id)
                .order_by(VideoBookmark.timestamp)
            )
            return list(s.exec(stmt).all())

    # -- settings

    def set_setting(self, key: str, value: str, setting_type: str = "string") -> UserSetting:
        if setting_type not in SETTING_TYPES:
            raise InvalidInputError(f"unknown setting type: {setting_type}")
        try:
            decode_setting(value, setting_type)
        except ValueError as exc:
            raise InvalidInputError(f"invalid {setting_type} value for {key}: {value!r}") from exc

        with self.session() as s:
            setting = s.exec(select(UserSetting).where(UserSetting.setting_key == key)).first()
            if setting is None:
                setting = UserSetting(setting_key=key, setting_value=value, setting_type=setting_type)
            else:
                setting.setting_value = value
                setting.setting_type = setting_type
                setting.updated_at = utcnow()
            s.add(setting)
            s.commit()
            return setting

    def get_setting(self, key: str) -> Optional[UserSetting]:
        with self.session() as s:
            return s.exec(select(UserSetting).where(UserSetting.setting_key == key)).first()

    def all_settings(self) -> list[UserSetting]:
        with self.session() as s:
            return list(s.exec(select(UserSetting).order_by(UserSetting.setting_key)).all())

    def initialize_default_settings(self) -> int:
        """Insert the default settings that are missing; returns how many were added."""
        added = 0
        with self.session() as s:
            for key, value, setting_type in DEFAULT_SETTINGS:
                exists = s.exec(select(UserSetting).where(UserSetting.setting_key == key)).first()
                if exists is not None:
                    continue
                s.add(UserSetting(setting_key=key, setting_value=value, setting_type=setting_type))
                added += 1
            s.commit()
        return added

    # -- activity log

    def log_activity(
        self,
        activity_type: str,
        entity_id: str,
        entity_type: str,
        details: Optional[str] = None,
    ) -> ActivityLog:
        entry = ActivityLog(
            activity_type=activity_type,
            entity_id=entity_id,
            entity_type=entity_type,
            details=details,
        )
        with self.session() as s:
            s.add(entry)
            s.commit()
            return entry

    def try_log_activity(
        self,
        activity_type: str,
        entity_id: str,
        entity_type: str,
        details: Optional[str] = None,
    ) -> Optional[ActivityLog]:
        """Best-effort variant: a failed write is logged and dropped."""
        try:
            return self.log_activity(activity_type, entity_id, entity_type, details)
        except StoreError:
            log.warning(
                "could not record %s activity for %s %s",
                activity_type,
                entity_type,
                entity_id,
                exc_info=True,
            )
            return None

    def recent_activities(self, limit: int = 50) -> list[ActivityLog]:
        with self.session() as s:
            stmt = select(ActivityLog).order_by(ActivityLog.created_at.desc()).limit(limit)
            return list(s.exec(stmt).all())

    def activities_by_type(self, activity_type: str, limit: int = 50) -> list[ActivityLog]:
        with self.session() as s:
            stmt = (
                select(ActivityLog)
                .where(ActivityLog.activity_type == activity_type)
                .order_by(ActivityLog.created_at.desc())
                .limit(limit)
            )
            return list(s.exec(stmt).all())
