from __future__ import annotations

import logging
import os
from collections import defaultdict
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from .errors import InvalidInputError, NotFoundError, StoreError
from .models import Course, Module, Video
from .store import Store


log = logging.getLogger(__name__)

VIDEO_EXTS = frozenset(
    {".mp4", ".mkv", ".avi", ".ts", ".mov", ".wmv", ".flv", ".webm", ".m4v", ".3gp", ".ogv"}
)

PathLike = Union[str, Path]


def is_video_file(path: PathLike) -> bool:
    """Classify by extension only; the file is never opened."""
    return Path(path).suffix.lower() in VIDEO_EXTS


@dataclass
class ScanStats:
    directories_seen: int = 0
    root_videos: int = 0
    videos_seen: int = 0
    courses_created: int = 0
    courses_reused: int = 0
    failed: list[str] = field(default_factory=list)


def path_text(path: PathLike) -> str:
    """Path as storable text; bytes that are not valid UTF-8 become U+FFFD."""
    return os.fsencode(path).decode("utf-8", "replace")


def _raise(err: OSError) -> None:
    raise err


def iter_video_files(course_dir: Path) -> Iterator[Path]:
    # Symlinked directories are not descended into; a read error anywhere aborts the walk.
    for dirpath, _dirnames, filenames in os.walk(course_dir, onerror=_raise, followlinks=False):
        base = Path(dirpath)
        for name in filenames:
            p = base / name
            if is_video_file(name) and p.is_file():
                yield p


def group_by_module(videos: Iterable[Path]) -> dict[Path, list[Path]]:
    """One group per immediate parent directory.

    Groups come back ordered by directory path and each group's files by file
    name, so repeated scans assign the same order_index values.
    """
    groups: dict[Path, list[Path]] = defaultdict(list)
    for video in videos:
        groups[video.parent].append(video)
    return {
        directory: sorted(files, key=lambda p: p.name)
        for directory, files in sorted(groups.items(), key=lambda kv: str(kv[0]))
    }


@dataclass
class VideoInfo:
    path: Path
    file_size: int
    duration: Optional[float] = None
    width: Optional[int] = None
    height: Optional[int] = None


def get_video_info(video_path: PathLike) -> VideoInfo:
    p = Path(video_path)
    if not p.is_file():
        raise NotFoundError("Video file", str(p))
    # Duration/resolution would need a media probe; only size is read.
    return VideoInfo(path=p, file_size=p.stat().st_size)


class Scanner:
    """Turns directory trees into Course/Module/Video rows.

    Each immediate subdirectory of a scanned root is one course and each
    directory holding videos inside it is one module. Loose videos at the root
    form an extra course named after the root.
    """

    def __init__(self, store: Store, reuse_ids: bool = True):
        self.store = store
        self.reuse_ids = reuse_ids
        self.stats = ScanStats()

    def scan_directory(self, root: PathLike) -> list[Course]:
        root = Path(root).expanduser().resolve()
        if not root.exists():
            raise NotFoundError("Directory", str(root))
        if not root.is_dir():
            raise InvalidInputError(f"not a directory: {root}")

        log.info("scanning %s", root)
        try:
            children = sorted(root.iterdir(), key=lambda p: p.name)
        except OSError as exc:
            raise InvalidInputError(f"cannot read directory {root}: {exc.strerror}") from exc

        courses: list[Course] = []
        root_videos: list[Path] = []

        for child in children:
            if child.is_dir():
                self.stats.directories_seen += 1
                try:
                    course = self.scan_course_directory(child)
                except (OSError, UnicodeError, StoreError):
                    # One unreadable or unwritable course must not hide its siblings.
                    log.exception("skipping course directory %s", child)
                    self.stats.failed.append(path_text(child))
                    continue
                courses.append(course)
            elif is_video_file(child.name) and child.is_file():
                log.debug("video at scan root: %s", child)
                root_videos.append(child)

        if root_videos:
            self.stats.root_videos += len(root_videos)
            groups = {root: sorted(root_videos, key=lambda p: p.name)}
            try:
                courses.append(
                    self._save_course(path_text(root.name) or "Course", root, groups, lambda _d: "Videos")
                )
            except (OSError, UnicodeError, StoreError):
                log.exception("skipping loose videos under %s", root)
                self.stats.failed.append(path_text(root))

        log.info(
            "scan of %s done: %d directories, %d root videos, %d courses, %d failed",
            root,
            self.stats.directories_seen,
            len(root_videos),
            len(courses),
            len(self.stats.failed),
        )
        return courses

    def scan_course_directory(self, course_dir: PathLike) -> Course:
        course_dir = Path(course_dir).expanduser().resolve()
        # Walk first: an I/O error here leaves nothing half-written.
        groups = group_by_module(iter_video_files(course_dir))
        if not groups:
            log.warning("no videos found in course directory %s", course_dir)

        def module_name(directory: Path) -> str:
            if directory == course_dir:
                return "Lessons"
            return path_text(directory.name) or "Module"

        name = path_text(course_dir.name) or "Untitled Course"
        return self._save_course(name, course_dir, groups, module_name)

    def rescan_courses(self, roots: Iterable[PathLike]) -> list[Course]:
        self.stats = ScanStats()
        all_courses: list[Course] = []
        for root in roots:
            try:
                all_courses.extend(self.scan_directory(root))
            except (NotFoundError, InvalidInputError) as exc:
                log.warning("skipping scan root %s: %s", root, exc.message)
                self.stats.failed.append(path_text(root))
        return all_courses

    def _start_course(self, name: str, path: Path) -> tuple[Course, bool]:
        """Return the course row for `path` and whether an existing id was kept."""
        existing = self.store.get_course_by_path(path_text(path))
        if existing is not None:
            if self.reuse_ids:
                existing.name = name
                return self.store.upsert_course(existing), True
            log.info("replacing previously scanned course %s", path)
            self.store.delete_course(existing.id)

        return self.store.upsert_course(Course(name=name, path=path_text(path))), False

    def _save_course(
        self,
        name: str,
        path: Path,
        groups: dict[Path, list[Path]],
        module_name: Callable[[Path], str],
    ) -> Course:
        course, reused = self._start_course(name, path)

        known_modules = {}
        if reused:
            known_modules = {m.path: m for m in self.store.course_modules(course.id)}

        kept_modules: set[str] = set()
        kept_videos: set[str] = set()
        for order, (directory, files) in enumerate(groups.items()):
            module_path = path_text(directory)
            module = known_modules.get(module_path) or Module(course_id=course.id, path=module_path)
            module.name = module_name(directory)
            module.order_index = order
            module = self.store.upsert_module(module)
            kept_modules.add(module.id)

            for index, video_path in enumerate(files):
                video = self._save_video(course, module, video_path, index)
                kept_videos.add(video.id)

        if reused:
            self._prune(course, kept_modules, kept_videos)

        if reused:
            self.stats.courses_reused += 1
        else:
            self.stats.courses_created += 1
        self.stats.videos_seen += len(kept_videos)
        log.info("course %r: %d modules, %d videos", course.name, len(kept_modules), len(kept_videos))
        return course

    def _save_video(self, course: Course, module: Module, video_path: Path, index: int) -> Video:
        path_str = path_text(video_path)
        # Path is the natural key: keep the id (and with it the progress) of a known file.
        video = self.store.get_video_by_path(path_str) or Video(
            module_id=module.id, course_id=course.id, path=path_str, name=path_text(video_path.stem)
        )
        video.module_id = module.id
        video.course_id = course.id
        video.name = path_text(video_path.stem) or "Video"
        video.order_index = index
        video.file_size = video_path.stat().st_size
        return self.store.upsert_video(video)

    def _prune(self, course: Course, kept_modules: set[str], kept_videos: set[str]) -> None:
        for module in self.store.course_modules(course.id):
            if module.id not in kept_modules:
                log.info("removing module %r, no longer on disk", module.path)
                self.store.delete_module(module.id)
        for video in self.store.course_videos(course.id):
            if video.id not in kept_videos:
                log.info("removing video %r, no longer on disk", video.path)
                self.store.delete_video(video.id)


@dataclass
class MediaFile:
    name: str
    path: str
    file_type: str
    size: int
    duration: Optional[float] = None


@dataclass
class SubFolder:
    name: str
    path: str
    media_count: int


@dataclass
class FolderContent:
    path: str
    media_files: list[MediaFile]
    subfolders: list[SubFolder]
    total_files: int


def _browse(folder: PathLike) -> tuple[Path, Iterator[tuple[Path, list[str], list[str]]]]:
    p = Path(folder).expanduser()
    if not p.is_dir():
        raise NotFoundError("Folder", str(p))

    def warn(err: OSError) -> None:
        log.warning("cannot read %s: %s", err.filename, err.strerror)

    return p, ((Path(d), dirs, files) for d, dirs, files in os.walk(p, onerror=warn, followlinks=False))


def _media_file(p: Path) -> MediaFile:
    return MediaFile(
        name=p.name,
        path=str(p),
        file_type=p.suffix.lstrip(".").upper() or "UNKNOWN",
        size=p.stat().st_size,
    )


def scan_folder_content(folder: PathLike) -> FolderContent:
    """Videos and subfolders below `folder`, for browsing without importing a course."""
    root, walk = _browse(folder)

    media_files: list[MediaFile] = []
    counts: dict[Path, int] = {}
    for directory, dirs, files in walk:
        for d in dirs:
            counts.setdefault(directory / d, 0)
        for name in files:
            p = directory / name
            if not (is_video_file(name) and p.is_file()):
                continue
            media_files.append(_media_file(p))
            # Credit every ancestor below the browsed folder.
            parent = p.parent
            while parent != root and root in parent.parents:
                counts[parent] = counts.get(parent, 0) + 1
                parent = parent.parent

    subfolders = [SubFolder(name=d.name, path=str(d), media_count=n) for d, n in counts.items()]
    media_files.sort(key=lambda m: m.name)
    subfolders.sort(key=lambda s: s.name)
    return FolderContent(
        path=str(root), media_files=media_files, subfolders=subfolders, total_files=len(media_files)
    )


def folder_playlist(folder: PathLike) -> list[MediaFile]:
    """Every video below `folder`, in path order."""
    _root, walk = _browse(folder)
    playlist = [
        _media_file(directory / name)
        for directory, _dirs, files in walk
        for name in files
        if is_video_file(name) and (directory / name).is_file()
    ]
    playlist.sort(key=lambda m: m.path)
    return playlist
