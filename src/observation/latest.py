"""
Keep-only-latest hand-off between a frame producer and the consumer.
"""

from __future__ import annotations

import threading
from typing import Optional

from models.frame import FrameSample


class LatestFrameSlot:
    """
    A single-slot mailbox for frames.

    put() replaces any pending frame and closes the one it displaced, so a slow
    consumer always sees the newest frame and intermediate frames are dropped
    rather than queued.
    """

    def __init__(self):
        self._cond = threading.Condition()
        self._frame: Optional[FrameSample] = None
        self._closed = False
        self.dropped = 0

    def put(self, frame: FrameSample) -> None:
        with self._cond:
            if self._closed:
                displaced = frame
            else:
                displaced = self._frame
                self._frame = frame
                if displaced is not None:
                    self.dropped += 1
                self._cond.notify()
        if displaced is not None:
            displaced.close()

    def take(self, timeout: Optional[float] = None) -> Optional[FrameSample]:
        """Wait for a frame. Returns None on timeout or once the slot is closed and empty."""
        with self._cond:
            if self._frame is None and not self._closed:
                self._cond.wait(timeout)
            frame = self._frame
            self._frame = None
            return frame

    def close(self) -> None:
        """Stop accepting frames and wake waiters. A pending frame is closed and counted as dropped."""
        with self._cond:
            self._closed = True
            pending = self._frame
            self._frame = None
            if pending is not None:
                self.dropped += 1
            self._cond.notify_all()
        if pending is not None:
            pending.close()

    @property
    def closed(self) -> bool:
        return self._closed
