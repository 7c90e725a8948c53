from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from sqlalchemy import event
from sqlalchemy.engine import Engine, make_url
from sqlmodel import Session, SQLModel, create_engine

from .config import get_settings
from .models import (
    ActivityLog,
    Course,
    Module,
    SchemaVersion,
    UserNote,
    UserSetting,
    Video,
    VideoBookmark,
    VideoProgress,
    utcnow,
)


log = logging.getLogger(__name__)


# Forward-only, additive steps. Each entry lists the tables that version introduced.
MIGRATIONS: dict[int, list[type[SQLModel]]] = {
    1: [Course, Module, Video, VideoProgress],
    2: [UserNote, VideoBookmark, UserSetting, ActivityLog],
}

CURRENT_VERSION = max(MIGRATIONS)


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(database_url: Optional[str] = None) -> Engine:
    if database_url is None:
        database_url = get_settings().database_url
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
        db_file = make_url(database_url).database
        if db_file and db_file != ":memory:":
            Path(db_file).parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(database_url, echo=False, connect_args=connect_args)
    if database_url.startswith("sqlite"):
        # Cascading deletes only work with enforcement switched on per connection.
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def _apply_step(session: Session, version: int) -> None:
    conn = session.connection()
    for model in MIGRATIONS[version]:
        model.__table__.create(conn, checkfirst=True)


def schema_version(engine: Engine) -> Optional[int]:
    """Stored schema version, or None for a database that was never stamped."""
    with Session(engine) as session:
        SchemaVersion.__table__.create(session.connection(), checkfirst=True)
        marker = session.get(SchemaVersion, 1)
        session.commit()
        return marker.version if marker else None


def migrate(engine: Engine, target: int = CURRENT_VERSION) -> int:
    """Bring the schema up to `target` and return the version now stamped.

    Safe to call on every start: a database already at `target` is left untouched.
    """
    if target not in MIGRATIONS:
        raise ValueError(f"unknown schema version: {target}")

    with Session(engine) as session:
        SchemaVersion.__table__.create(session.connection(), checkfirst=True)
        marker = session.get(SchemaVersion, 1)

        if marker is None:
            log.info("creating database schema v%d", target)
            for version in range(1, target + 1):
                _apply_step(session, version)
            session.add(SchemaVersion(id=1, version=target))
            session.commit()
            return target

        if marker.version > target:
            log.warning(
                "database schema v%d is newer than this build (v%d); leaving it alone",
                marker.version,
                target,
            )
            return marker.version

        if marker.version == target:
            return target

        for version in range(marker.version + 1, target + 1):
            log.info("migrating database schema v%d -> v%d", version - 1, version)
            _apply_step(session, version)

        marker.version = target
        marker.updated_at = utcnow()
        session.add(marker)
        session.commit()
        return target
