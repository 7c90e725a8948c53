"""
Tests for schema versioning and store CRUD
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import inspect
from sqlmodel import Session, select

from course_library.db import CURRENT_VERSION, make_engine, migrate, schema_version
from course_library.errors import InvalidInputError, NotFoundError, StoreError
from course_library.models import (
    ActivityLog,
    Course,
    Module,
    SchemaVersion,
    UserNote,
    Video,
    VideoBookmark,
    VideoProgress,
)
from course_library.store import DEFAULT_SETTINGS


ALL_TABLES = {
    "courses",
    "modules",
    "videos",
    "video_progress",
    "user_notes",
    "video_bookmarks",
    "user_settings",
    "activity_log",
    "schema_version",
}


@pytest.fixture
def engine(tmp_path):
    e = make_engine(f"sqlite:///{tmp_path / 'schema.db'}")
    yield e
    e.dispose()


class TestMigrations:

    def test_fresh_database_gets_current_schema(self, engine):
        assert schema_version(engine) is None

        assert migrate(engine) == CURRENT_VERSION

        assert ALL_TABLES <= set(inspect(engine).get_table_names())
        assert schema_version(engine) == CURRENT_VERSION

    def test_upgrade_runs_missing_steps(self, engine):
        assert migrate(engine, target=1) == 1
        assert not inspect(engine).has_table("user_notes")
        assert inspect(engine).has_table("video_progress")

        assert migrate(engine) == 2

        assert ALL_TABLES <= set(inspect(engine).get_table_names())
        assert schema_version(engine) == 2

    def test_second_run_is_a_noop(self, engine):
        migrate(engine, target=1)
        migrate(engine)
        with Session(engine) as s:
            stamped = s.get(SchemaVersion, 1).updated_at
        tables = set(inspect(engine).get_table_names())

        assert migrate(engine) == 2

        with Session(engine) as s:
            assert s.get(SchemaVersion, 1).updated_at == stamped
            assert len(s.exec(select(SchemaVersion)).all()) == 1
        assert set(inspect(engine).get_table_names()) == tables

    def test_newer_database_is_left_alone(self, engine):
        migrate(engine)
        with Session(engine) as s:
            marker = s.get(SchemaVersion, 1)
            marker.version = 99
            s.add(marker)
            s.commit()

        assert migrate(engine) == 99

    def test_unknown_target(self, engine):
        with pytest.raises(ValueError):
            migrate(engine, target=7)


class TestHierarchy:

    def test_courses_ordered_by_last_accessed_then_name(self, store):
        for name in ["Charlie", "alpha", "Bravo"]:
            store.upsert_course(Course(name=name, path=f"/c/{name}"))
        bravo = store.get_course_by_path("/c/Bravo")

        store.touch_course(bravo.id)

        names = [c.name for c in store.all_courses()]
        assert names[0] == "Bravo"
        assert names[1:] == sorted(["Charlie", "alpha"])

    def test_timestamps_come_back_as_utc(self, store):
        course = store.upsert_course(Course(name="C", path="/c/C"))
        touched = store.touch_course(course.id)

        loaded = store.get_course(course.id)

        assert loaded.created_at.utcoffset() == timedelta(0)
        assert loaded.created_at == course.created_at
        assert loaded.last_accessed == touched.last_accessed

    def test_offset_timestamps_are_stored_as_utc(self, store):
        plus_two = timezone(timedelta(hours=2))
        entry = ActivityLog(
            activity_type="opened",
            entity_id="app",
            entity_type="app",
            created_at=datetime(2024, 1, 1, 14, 0, 0, tzinfo=plus_two),
        )
        with store.session() as s:
            s.add(entry)
            s.commit()

        (loaded,) = store.recent_activities(1)

        assert loaded.created_at == datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        assert loaded.created_at.tzinfo == timezone.utc

    def test_upsert_replaces_by_id(self, store, make_course):
        course, module, videos = make_course(n=1)
        videos[0].name = "renamed"

        store.upsert_video(videos[0])

        assert [v.name for v in store.module_videos(module.id)] == ["renamed"]

    def test_duplicate_video_path_is_rejected(self, store, make_course):
        course, module, videos = make_course(n=1)

        with pytest.raises(StoreError):
            store.upsert_video(
                Video(module_id=module.id, course_id=course.id, name="dup", path=videos[0].path)
            )

    def test_orphan_module_is_rejected(self, store):
        with pytest.raises(StoreError):
            store.upsert_module(Module(course_id="missing", name="M", path="/m", order_index=0))

    def test_modules_and_videos_in_order_index(self, store, make_course):
        course, module, videos = make_course(n=3)
        store.upsert_module(Module(course_id=course.id, name="Later", path="/later", order_index=5))
        store.upsert_module(Module(course_id=course.id, name="Earlier", path="/earlier", order_index=2))

        assert [m.name for m in store.course_modules(course.id)] == ["Lessons", "Earlier", "Later"]
        assert [v.order_index for v in store.module_videos(module.id)] == [0, 1, 2]

    def test_delete_course_cascades(self, store, make_course):
        course, module, videos = make_course(n=2)
        store.mark_completed(videos[0].id, True)
        store.create_note("note", video_id=videos[0].id, course_id=course.id, module_id=module.id)
        store.create_bookmark(videos[1].id, 12.0, "here")

        store.delete_course(course.id)

        with store.session() as s:
            for model in (Module, Video, VideoProgress, UserNote, VideoBookmark):
                assert s.exec(select(model)).all() == [], model.__name__

    def test_missing_entities(self, store):
        with pytest.raises(NotFoundError):
            store.get_course("nope")
        with pytest.raises(NotFoundError):
            store.get_video("nope")
        with pytest.raises(NotFoundError):
            store.touch_course("nope")
        with pytest.raises(NotFoundError):
            store.delete_course("nope")
        assert store.get_video_by_path("/nope.mp4") is None


class TestNotesAndBookmarks:

    def test_notes_ordered_by_timestamp(self, store, make_course):
        course, module, (video,) = make_course(n=1)
        store.create_note("late", video_id=video.id, timestamp=90.0)
        store.create_note("early", video_id=video.id, timestamp=5.0)
        store.create_note("course-wide", course_id=course.id)

        assert [n.title for n in store.notes_by_video(video.id)] == ["early", "late"]
        assert [n.title for n in store.notes_by_course(course.id)] == ["course-wide"]
        assert len(store.all_notes()) == 3

    def test_update_and_delete_note(self, store):
        note = store.create_note("draft", content="x")

        updated = store.update_note(note.id, "final", "y")

        assert (updated.title, updated.content) == ("final", "y")
        assert updated.updated_at >= note.created_at
        store.delete_note(note.id)
        assert store.all_notes() == []
        with pytest.raises(NotFoundError):
            store.update_note(note.id, "again", "z")
        with pytest.raises(NotFoundError):
            store.delete_note(note.id)

    def test_bookmarks(self, store, make_course):
        _course, _module, (video,) = make_course(n=1)
        store.create_bookmark(video.id, 60.0, "b")
        first = store.create_bookmark(video.id, 10.0, "a", "intro")

        assert [b.title for b in store.video_bookmarks(video.id)] == ["a", "b"]
        store.delete_bookmark(first.id)
        assert [b.title for b in store.video_bookmarks(video.id)] == ["b"]

    def test_bookmark_for_missing_video(self, store):
        with pytest.raises(StoreError):
            store.create_bookmark("missing", 1.0, "x")


class TestSettings:

    def test_set_is_an_upsert_by_key(self, store):
        store.set_setting("volume", "0.5", "number")
        store.set_setting("volume", "0.7", "number")

        (setting,) = store.all_settings()
        assert setting.setting_value == "0.7"
        assert setting.typed_value() == 0.7

    @pytest.mark.parametrize(
        "value, setting_type",
        [("maybe", "boolean"), ("fast", "number"), ("{bad", "json"), ("x", "color")],
    )
    def test_invalid_values_are_rejected(self, store, value, setting_type):
        with pytest.raises(InvalidInputError):
            store.set_setting("key", value, setting_type)

    def test_typed_values(self, store):
        assert store.set_setting("a", "true", "boolean").typed_value() is True
        assert store.set_setting("b", "3", "number").typed_value() == 3
        assert store.set_setting("c", '{"x": [1]}', "json").typed_value() == {"x": [1]}

    def test_defaults_only_fill_gaps(self, store):
        store.set_setting("theme", "light")

        assert store.initialize_default_settings() == len(DEFAULT_SETTINGS) - 1
        assert store.initialize_default_settings() == 0
        assert store.get_setting("theme").setting_value == "light"
        assert store.get_setting("missing") is None


class TestActivityLog:

    def test_recent_first_and_filter_by_type(self, store):
        base = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        entries = [
            ActivityLog(activity_type="note_created", entity_id="n1", entity_type="note", created_at=base),
            ActivityLog(
                activity_type="video_completed",
                entity_id="v1",
                entity_type="video",
                details="done",
                created_at=base + timedelta(minutes=1),
            ),
            ActivityLog(
                activity_type="note_created",
                entity_id="n2",
                entity_type="note",
                created_at=base + timedelta(minutes=2),
            ),
        ]
        with store.session() as s:
            s.add_all(entries)
            s.commit()
        first, second, third = entries

        assert [a.id for a in store.recent_activities(10)] == [third.id, second.id, first.id]
        assert [a.entity_id for a in store.activities_by_type("note_created", 10)] == ["n2", "n1"]
        assert len(store.recent_activities(2)) == 2

    def test_best_effort_logging_swallows_failures(self, store):
        assert store.try_log_activity("broken", None, "note") is None
        assert store.recent_activities(10) == []
