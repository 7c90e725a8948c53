"""Watch progress and completion state.

Every function here takes an open `Session` and commits its own writes; the
`Store` calls them while holding its lock. A video has at most one progress
row, so writes always look the row up by video id before deciding between
insert and update.
"""

from __future__ import annotations

from typing import NamedTuple, Optional

from sqlalchemy import func, or_
from sqlmodel import Session, select

from .errors import InvalidInputError, NotFoundError
from .models import Course, Module, Video, VideoProgress, utcnow


# current_time/duration recorded when a video is marked complete before its
# real duration is known.
COMPLETED_SENTINEL = 100.0


class CompletionStats(NamedTuple):
    total: int
    completed: int
    in_progress: int

    @property
    def percent(self) -> float:
        if not self.total:
            return 0.0
        return round(100.0 * self.completed / self.total, 1)


def _require_video(session: Session, video_id: str) -> Video:
    video = session.get(Video, video_id)
    if video is None:
        raise NotFoundError("Video", video_id)
    return video


def get_progress(session: Session, video_id: str) -> Optional[VideoProgress]:
    return session.exec(select(VideoProgress).where(VideoProgress.video_id == video_id)).first()


def save_progress(
    session: Session,
    video_id: str,
    current_time: float,
    duration: float,
    completed: bool = False,
) -> VideoProgress:
    if current_time < 0 or duration < 0:
        raise InvalidInputError("current_time and duration must not be negative")
    _require_video(session, video_id)

    prog = get_progress(session, video_id)
    if prog is None:
        prog = VideoProgress(
            video_id=video_id,
            current_time=current_time,
            duration=duration,
            completed=completed,
        )
    else:
        prog.current_time = current_time
        prog.duration = duration
        prog.completed = completed
        prog.last_watched = utcnow()

    session.add(prog)
    session.commit()
    return prog


def register_playback(session: Session, video_id: str) -> VideoProgress:
    """Count one more launch of the video, creating its progress row if needed."""
    _require_video(session, video_id)

    prog = get_progress(session, video_id)
    if prog is None:
        prog = VideoProgress(video_id=video_id, watch_count=1)
    else:
        prog.watch_count += 1
        prog.last_watched = utcnow()

    session.add(prog)
    session.commit()
    return prog


def mark_completed(session: Session, video_id: str, completed: bool) -> VideoProgress:
    video = _require_video(session, video_id)

    prog = get_progress(session, video_id)
    if prog is None:
        if completed:
            full = video.duration or COMPLETED_SENTINEL
            prog = VideoProgress(
                video_id=video_id, current_time=full, duration=full, completed=True, watch_count=0
            )
        else:
            prog = VideoProgress(
                video_id=video_id, current_time=0.0, duration=0.0, completed=False, watch_count=0
            )
    else:
        prog.completed = completed
        prog.last_watched = utcnow()

    session.add(prog)
    session.commit()
    return prog


def recent_videos(session: Session, limit: int = 10) -> list[tuple[Video, VideoProgress]]:
    """Videos started but not finished, most recently watched first."""
    stmt = (
        select(Video, VideoProgress)
        .join(VideoProgress, VideoProgress.video_id == Video.id)
        .where(VideoProgress.completed == False)  # noqa: E712
        .order_by(VideoProgress.last_watched.desc())
        .limit(limit)
    )
    return [(video, prog) for video, prog in session.exec(stmt)]


def completed_videos(
    session: Session, course_id: Optional[str] = None
) -> list[tuple[Video, VideoProgress]]:
    stmt = (
        select(Video, VideoProgress)
        .join(VideoProgress, VideoProgress.video_id == Video.id)
        .where(VideoProgress.completed == True)  # noqa: E712
    )
    if course_id is not None:
        stmt = stmt.where(Video.course_id == course_id)
    stmt = stmt.order_by(VideoProgress.last_watched.desc())
    return [(video, prog) for video, prog in session.exec(stmt)]


def incomplete_videos(
    session: Session, course_id: Optional[str] = None
) -> list[tuple[Video, Optional[VideoProgress]]]:
    """Videos not completed yet, including those never opened, in course order."""
    stmt = (
        select(Video, VideoProgress)
        .join(Module, Module.id == Video.module_id)
        .outerjoin(VideoProgress, VideoProgress.video_id == Video.id)
        .where(or_(VideoProgress.id == None, VideoProgress.completed == False))  # noqa: E711, E712
    )
    if course_id is not None:
        stmt = stmt.where(Video.course_id == course_id)
    stmt = stmt.order_by(Video.course_id, Module.order_index, Video.order_index)
    return [(video, prog) for video, prog in session.exec(stmt)]


def course_completion_stats(session: Session, course_id: str) -> CompletionStats:
    if session.get(Course, course_id) is None:
        raise NotFoundError("Course", course_id)

    total = session.exec(
        select(func.count()).select_from(Video).where(Video.course_id == course_id)
    ).one()

    progress_in_course = (
        select(func.count())
        .select_from(VideoProgress)
        .join(Video, Video.id == VideoProgress.video_id)
        .where(Video.course_id == course_id)
    )
    completed = session.exec(
        progress_in_course.where(VideoProgress.completed == True)  # noqa: E712
    ).one()
    in_progress = session.exec(
        progress_in_course.where(
            VideoProgress.completed == False,  # noqa: E712
            VideoProgress.current_time > 0,
        )
    ).one()

    return CompletionStats(total=total, completed=completed, in_progress=in_progress)
