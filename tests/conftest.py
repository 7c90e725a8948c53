"""
Test configuration and fixtures
"""

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from course_library.main import app, get_player, get_store
from course_library.models import Course, Module, Video
from course_library.player import ExternalPlayer
from course_library.store import Store


@pytest.fixture
def store(tmp_path: Path):
    """Fresh, fully migrated database per test"""
    s = Store.open(f"sqlite:///{tmp_path / 'library.db'}")
    yield s
    s.engine.dispose()


@pytest.fixture
def touch():
    """Create a fake video (or any) file, parents included"""

    def _touch(path: Path, data: bytes = b"fake video content") -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path

    return _touch


@pytest.fixture
def library(tmp_path: Path) -> Path:
    root = tmp_path / "library"
    root.mkdir()
    return root


@pytest.fixture
def make_course(store: Store):
    """Insert a course with one module and `n` videos straight through the store"""

    def _make(name: str = "Course", n: int = 3, duration=None):
        course = store.upsert_course(Course(name=name, path=f"/courses/{name}"))
        module = store.upsert_module(
            Module(course_id=course.id, name="Lessons", path=course.path, order_index=0)
        )
        videos = [
            store.upsert_video(
                Video(
                    module_id=module.id,
                    course_id=course.id,
                    name=f"{i:02d} lesson",
                    path=f"{course.path}/{i:02d} lesson.mp4",
                    duration=duration,
                    order_index=i,
                )
            )
            for i in range(n)
        ]
        return course, module, videos

    return _make


@pytest.fixture
def launched() -> list:
    return []


@pytest.fixture
def client(store: Store, launched: list, monkeypatch):
    """Test client with the store and player dependencies overridden"""
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    player = ExternalPlayer(launcher=launched.append)

    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_player] = lambda: player
    yield TestClient(app)
    app.dependency_overrides.clear()
