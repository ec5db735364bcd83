"""Buffering of camera frames with a per-second index for time lookups."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

import numpy as np

logger = logging.getLogger(__name__)

ONE_SECOND = timedelta(seconds=1)
LOOKAHEAD_SECONDS = 10
DEFAULT_MAX_FRAMES = 100
DEFAULT_HOLDING_SECONDS = 100


def _is_empty(frame: Any) -> bool:
    return frame is None or np.asarray(frame).size == 0


def _copy(frame: Any) -> Optional[np.ndarray]:
    return None if frame is None else np.array(frame, copy=True)


def _second_clock() -> datetime:
    return datetime.now().replace(microsecond=0)


class FrameBuffer:
    """Recent frames plus one frame per second kept for a holding period.

    The queue holds the latest ``max_frames`` frames. The index holds a
    frame for each second, going back about ``holding_seconds`` seconds,
    so that the frame of a given moment can be found later.
    """

    def __init__(self, max_frames: int = DEFAULT_MAX_FRAMES,
                 holding_seconds: int = DEFAULT_HOLDING_SECONDS) -> None:
        if max_frames < 1:
            raise ValueError("max_frames must be at least 1")
        if holding_seconds < 1:
            raise ValueError("holding_seconds must be at least 1")
        self.max_frames = max_frames
        self.holding_seconds = holding_seconds
        self._lock = threading.Lock()
        self._queue: deque[tuple[datetime, Any]] = deque(maxlen=max_frames)
        self._index: dict[datetime, Any] = {}
        self._front: Optional[datetime] = None
        self._previous: Optional[datetime] = None
        self._ready = False

    def push(self, frame: Any, now: datetime) -> None:
        """Store a frame taken at ``now``."""
        with self._lock:
            self._queue.append((now, frame))

            if not self._index:
                self._front = now
                self._index[now] = frame
            else:
                if len(self._index) >= self.holding_seconds:
                    if self._front not in self._index:
                        self._front = min(self._index)
                    del self._index[self._front]

                if self._previous is not None and int(
                    (now - self._previous).total_seconds()
                ) == 1:
                    self._index.setdefault(now, frame)

            self._previous = now
            self._ready = True

    def read(self) -> Optional[np.ndarray]:
        """A copy of the latest frame; LookupError when nothing is buffered."""
        with self._lock:
            if not self._queue:
                raise LookupError("no frame has been buffered")
            return _copy(self._queue[-1][1])

    def latest(self) -> Optional[tuple[datetime, Optional[np.ndarray]]]:
        """The time and a copy of the latest frame, or None when empty."""
        with self._lock:
            if not self._queue:
                return None
            moment, frame = self._queue[-1]
            return moment, _copy(frame)

    def read_at(self, moment: datetime) -> Optional[np.ndarray]:
        """A copy of the indexed frame closest after ``moment``.

        Looks at most ten seconds ahead; returns None if nothing is found.
        """
        with self._lock:
            if not self._index:
                return None
            logger.info("Frame has been requested at %s", moment)
            for offset in range(LOOKAHEAD_SECONDS + 1):
                frame_time = moment + timedelta(seconds=offset)
                if frame_time in self._index:
                    logger.info("Frame has been found at %s", frame_time)
                    return _copy(self._index[frame_time])
            return None

    def is_ready(self) -> bool:
        """True once a non-empty latest frame is in both queue and index."""
        with self._lock:
            return (
                bool(self._queue)
                and bool(self._index)
                and not _is_empty(self._queue[-1][1])
                and self._ready
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._queue)


class FrameReader:
    """Background thread that reads frames from a source into a FrameBuffer.

    ``source`` must provide ``read()`` returning a frame (or None when a
    frame could not be read); ``release()`` is called on close if present.
    """

    wait_seconds = 2.0
    destroy_seconds = 3.0
    video_delay = 0.03

    def __init__(self, source: Any, buffer: FrameBuffer, from_video: bool = False,
                 clock: Optional[Callable[[], datetime]] = None) -> None:
        self.source = source
        self.buffer = buffer
        self.from_video = from_video
        self.clock = clock or _second_clock
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def __enter__(self) -> "FrameReader":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def start(self) -> None:
        """Start the reading thread."""
        if self._thread is not None:
            raise RuntimeError("the frame reader has already been started")
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="frame-reader", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stop.is_set():
            frame = self.source.read()
            self.buffer.push(frame, self.clock())
            if self.from_video:
                self._stop.wait(self.video_delay)

    def close(self) -> None:
        """Stop the reading thread and release the source."""
        logger.info("Destroying the video input handler")
        self._stop.set()
        if self._thread is not None:
            self._thread.join(self.wait_seconds)
            if self._thread.is_alive():
                self._thread.join(self.destroy_seconds)
            if self._thread.is_alive():
                logger.error("The video input thread did not stop in time")
        release = getattr(self.source, "release", None)
        if callable(release):
            release()
        logger.info("The video input handler has been destroyed")