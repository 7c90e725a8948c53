from __future__ import annotations

import logging
import os
import subprocess
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .errors import LibraryError, NotFoundError


log = logging.getLogger(__name__)

# Opens a file with some external program; may hand back the spawned process.
Launcher = Callable[[str], Optional[subprocess.Popen]]


def open_with_default_app(path: str) -> Optional[subprocess.Popen]:
    if sys.platform.startswith("win"):
        os.startfile(path)  # type: ignore[attr-defined]
        return None
    opener = "open" if sys.platform == "darwin" else "xdg-open"
    return subprocess.Popen([opener, path], stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)


@dataclass
class PlayerStatus:
    is_playing: bool
    current_time: float
    duration: float
    volume: float
    current_file: Optional[str] = None


class ExternalPlayer:
    """Hands videos to the OS default player.

    There is no channel back from the external program, so the status only
    reflects what was requested here.
    """

    def __init__(self, launcher: Launcher = open_with_default_app):
        self._launcher = launcher
        self._process: Optional[subprocess.Popen] = None
        self.current_file: Optional[str] = None
        self.is_playing = False
        self.current_time = 0.0
        self.duration = 0.0
        self.volume = 1.0

    def play(self, video_path: str, start_time: Optional[float] = None) -> PlayerStatus:
        if not Path(video_path).is_file():
            raise NotFoundError("Video file", video_path)

        self.stop()
        try:
            self._process = self._launcher(video_path)
        except OSError as exc:
            raise LibraryError(f"could not start player: {exc}", status_code=500) from exc

        self.current_file = video_path
        self.is_playing = True
        self.current_time = start_time or 0.0
        log.info("playing %s", video_path)
        return self.status()

    def stop(self) -> None:
        if self._process is not None and self._process.poll() is None:
            self._process.terminate()
        self._process = None
        self.current_file = None
        self.is_playing = False
        self.current_time = 0.0

    def set_volume(self, volume: float) -> float:
        self.volume = min(1.0, max(0.0, volume))
        return self.volume

    def status(self) -> PlayerStatus:
        return PlayerStatus(
            is_playing=self.is_playing,
            current_time=self.current_time,
            duration=self.duration,
            volume=self.volume,
            current_file=self.current_file,
        )
