from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import DateTime
from sqlalchemy.types import TypeDecorator
from sqlmodel import Field, SQLModel, UniqueConstraint


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Aware UTC datetimes over a plain DATETIME column.

    SQLite stores no offset, so values are written as naive UTC and tagged
    with UTC again when read. Naive input is taken to be UTC already.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


class Course(SQLModel, table=True):
    __tablename__ = "courses"

    id: str = Field(default_factory=new_id, primary_key=True)
    name: str = Field(index=True, nullable=False)

    # Absolute path to the course directory (unique)
    path: str = Field(nullable=False)

    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    last_accessed: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)

    __table_args__ = (UniqueConstraint("path"),)


class Module(SQLModel, table=True):
    __tablename__ = "modules"

    id: str = Field(default_factory=new_id, primary_key=True)
    course_id: str = Field(foreign_key="courses.id", ondelete="CASCADE", index=True, nullable=False)

    name: str = Field(nullable=False)
    # Directory holding the module's videos
    path: str = Field(nullable=False)
    order_index: int = Field(default=0, nullable=False)


class Video(SQLModel, table=True):
    __tablename__ = "videos"

    id: str = Field(default_factory=new_id, primary_key=True)
    module_id: str = Field(foreign_key="modules.id", ondelete="CASCADE", index=True, nullable=False)
    # Denormalized; must agree with the module's course
    course_id: str = Field(foreign_key="courses.id", ondelete="CASCADE", index=True, nullable=False)

    name: str = Field(nullable=False)
    # Absolute path to the video file (unique)
    path: str = Field(nullable=False)

    duration: Optional[float] = Field(default=None)
    file_size: Optional[int] = Field(default=None)
    order_index: int = Field(default=0, nullable=False)

    __table_args__ = (UniqueConstraint("path"),)


class VideoProgress(SQLModel, table=True):
    __tablename__ = "video_progress"

    id: str = Field(default_factory=new_id, primary_key=True)
    video_id: str = Field(foreign_key="videos.id", ondelete="CASCADE", nullable=False)

    current_time: float = Field(default=0.0, nullable=False)
    duration: float = Field(default=0.0, nullable=False)
    completed: bool = Field(default=False, nullable=False)
    last_watched: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime, index=True)
    watch_count: int = Field(default=1, nullable=False)

    __table_args__ = (UniqueConstraint("video_id"),)


class UserNote(SQLModel, table=True):
    __tablename__ = "user_notes"

    id: str = Field(default_factory=new_id, primary_key=True)
    video_id: Optional[str] = Field(default=None, foreign_key="videos.id", ondelete="CASCADE", index=True)
    course_id: Optional[str] = Field(default=None, foreign_key="courses.id", ondelete="CASCADE", index=True)
    module_id: Optional[str] = Field(default=None, foreign_key="modules.id", ondelete="CASCADE")

    # Position in the video, seconds
    timestamp: Optional[float] = Field(default=None, index=True)
    title: str = Field(nullable=False)
    content: str = Field(default="", nullable=False)
    note_type: str = Field(default="note", nullable=False)

    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class VideoBookmark(SQLModel, table=True):
    __tablename__ = "video_bookmarks"

    id: str = Field(default_factory=new_id, primary_key=True)
    video_id: str = Field(foreign_key="videos.id", ondelete="CASCADE", index=True, nullable=False)

    timestamp: float = Field(nullable=False, index=True)
    title: str = Field(nullable=False)
    description: Optional[str] = Field(default=None)

    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


SETTING_TYPES = ("string", "number", "boolean", "json")


def decode_setting(value: str, setting_type: str) -> Any:
    """Turn a stored setting string into its typed value.

    Raises ValueError when the text does not match the declared type.
    """
    if setting_type == "string":
        return value
    if setting_type == "number":
        num = float(value)
        return int(num) if num.is_integer() and "." not in value else num
    if setting_type == "boolean":
        lowered = value.strip().lower()
        if lowered not in {"true", "false"}:
            raise ValueError(f"not a boolean: {value!r}")
        return lowered == "true"
    if setting_type == "json":
        return json.loads(value)
    raise ValueError(f"unknown setting type: {setting_type!r}")


class UserSetting(SQLModel, table=True):
    __tablename__ = "user_settings"

    id: str = Field(default_factory=new_id, primary_key=True)
    setting_key: str = Field(nullable=False)
    setting_value: str = Field(nullable=False)
    setting_type: str = Field(default="string", nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)

    __table_args__ = (UniqueConstraint("setting_key"),)

    def typed_value(self) -> Any:
        return decode_setting(self.setting_value, self.setting_type)


class ActivityLog(SQLModel, table=True):
    __tablename__ = "activity_log"

    id: str = Field(default_factory=new_id, primary_key=True)
    activity_type: str = Field(index=True, nullable=False)
    entity_id: str = Field(index=True, nullable=False)
    entity_type: str = Field(nullable=False)
    details: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime, index=True)


class SchemaVersion(SQLModel, table=True):
    __tablename__ = "schema_version"

    # Single row, id = 1
    id: int = Field(default=1, primary_key=True)
    version: int = Field(nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
