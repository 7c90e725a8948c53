"""
Tests for environment configuration and course search
"""

import os

from course_library.config import default_course_directories, get_settings
from course_library.models import Course
from course_library.search import search_courses


class TestSettings:

    def test_explicit_roots_and_flags(self, monkeypatch, tmp_path):
        monkeypatch.setenv("COURSES_DIRS", os.pathsep.join([str(tmp_path / "a"), str(tmp_path / "b")]))
        monkeypatch.setenv("DATABASE_URL", "sqlite:///custom.db")
        monkeypatch.setenv("COURSE_LIBRARY_REUSE_IDS", "0")
        monkeypatch.setenv("SCAN_ON_STARTUP", "yes")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        settings = get_settings()

        assert settings.course_roots == (tmp_path / "a", tmp_path / "b")
        assert settings.database_url == "sqlite:///custom.db"
        assert settings.reuse_scanned_ids is False
        assert settings.scan_on_startup is True
        assert settings.log_level == "DEBUG"

    def test_relative_roots_are_made_absolute(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("COURSES_DIRS", os.pathsep.join(["library", " ~/Courses "]))

        settings = get_settings()

        assert settings.course_roots[0] == tmp_path / "library"
        assert all(p.is_absolute() for p in settings.course_roots)
        assert "~" not in str(settings.course_roots[1])

    def test_defaults(self, monkeypatch, tmp_path):
        monkeypatch.delenv("COURSES_DIRS", raising=False)
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.delenv("COURSE_LIBRARY_REUSE_IDS", raising=False)
        monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
        monkeypatch.setenv("COURSES_DIR", str(tmp_path / "courses"))

        settings = get_settings()

        assert settings.reuse_scanned_ids is True
        assert settings.database_url.startswith("sqlite:///")
        assert settings.database_url.endswith("database.db")

    def test_missing_default_directories_are_dropped(self, tmp_path):
        courses = tmp_path / "courses"
        courses.mkdir()

        roots = default_course_directories(courses)

        assert roots[0] == courses
        assert tmp_path / "missing" not in roots
        assert all(p.is_dir() for p in roots)


class TestSearch:

    def _courses(self, *names):
        return [Course(name=n, path=f"/c/{n}") for n in names]

    def test_fuzzy_match_best_first(self):
        courses = self._courses("Cooking Basics", "Python for Data Science", "Advanced Python")

        hits = search_courses(courses, "  python ")

        assert {c.name for c in hits} == {"Python for Data Science", "Advanced Python"}

    def test_typo_still_matches(self):
        hits = search_courses(self._courses("Kubernetes in Depth", "Guitar"), "kubernets")

        assert [c.name for c in hits] == ["Kubernetes in Depth"]

    def test_empty_query_returns_everything(self):
        courses = self._courses("B", "A")

        assert search_courses(courses, "") == courses
