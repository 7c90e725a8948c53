from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path


APP_DIR_NAME = "course_library"


@dataclass(frozen=True)
class Settings:
    courses_dir: Path
    course_roots: tuple[Path, ...]
    database_url: str
    reuse_scanned_ids: bool = True
    scan_on_startup: bool = False
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8000


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw not in {"0", "false", "no", "off"}


def data_dir() -> Path:
    """Platform application-data directory (not created here)."""
    if sys.platform.startswith("win"):
        base = os.getenv("APPDATA") or str(Path.home() / "AppData" / "Roaming")
        return Path(base) / APP_DIR_NAME
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / APP_DIR_NAME
    base = os.getenv("XDG_DATA_HOME") or str(Path.home() / ".local" / "share")
    return Path(base) / APP_DIR_NAME


def default_database_url() -> str:
    return f"sqlite:///{data_dir() / 'database.db'}"


def default_course_directories(courses_dir: Path) -> list[Path]:
    """Candidate scan roots in priority order; missing ones are dropped."""
    home = Path.home()
    candidates = [
        courses_dir,
        home / "Courses",
        home / "Videos" / "Courses",
        home / "Documents" / "Courses",
        home / "Downloads",
    ]

    seen: set[Path] = set()
    out: list[Path] = []
    for p in (c.resolve() for c in candidates):
        if p in seen or not p.is_dir():
            continue
        seen.add(p)
        out.append(p)
    return out


def get_settings() -> Settings:
    courses_dir_raw = os.getenv("COURSES_DIR", "").strip()
    if not courses_dir_raw:
        courses_dir = (Path.home() / "Courses").resolve()
    else:
        courses_dir = Path(courses_dir_raw).expanduser().resolve()

    roots_raw = os.getenv("COURSES_DIRS", "").strip()
    if roots_raw:
        # Explicit list wins; missing entries stay so a stale one shows up in the logs.
        entries = [p.strip() for p in roots_raw.split(os.pathsep) if p.strip()]
        roots = tuple(Path(p).expanduser().resolve() for p in entries)
    else:
        roots = tuple(default_course_directories(courses_dir))

    database_url = os.getenv("DATABASE_URL", "").strip() or default_database_url()

    return Settings(
        courses_dir=courses_dir,
        course_roots=roots,
        database_url=database_url,
        reuse_scanned_ids=_env_flag("COURSE_LIBRARY_REUSE_IDS", True),
        scan_on_startup=_env_flag("SCAN_ON_STARTUP", False),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        host=os.getenv("HOST", "127.0.0.1").strip() or "127.0.0.1",
        port=int(os.getenv("PORT", "8000")),
    )
