"""
Video file capture backend.

Each capture writes the frames it is fed into a timestamped MP4 file using
cv2.VideoWriter. The writer is opened on the first frame so the output size
matches the camera. Finalizing happens on a background thread.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

import cv2
import numpy as np

from .backend import ActiveCapture, CaptureBackend, FinishedCallback


def ride_filename(when: datetime) -> str:
    """ride_YYYY-mm-dd-HH-MM-SS-fff.mp4"""
    return f"ride_{when.strftime('%Y-%m-%d-%H-%M-%S')}-{when.microsecond // 1000:03d}.mp4"


class VideoFileCapture(ActiveCapture):
    """One recording in progress."""

    def __init__(
        self,
        path: Path,
        fps: float,
        fourcc: str,
        on_finished: FinishedCallback,
        on_done: Optional[Callable[["VideoFileCapture"], None]] = None,
    ):
        self.path = path
        self.fps = fps
        self.fourcc = fourcc
        self.on_finished = on_finished
        self.on_done = on_done

        self.frames_written = 0
        self._writer: Optional[cv2.VideoWriter] = None
        self._error: Optional[str] = None
        self._stopped = False
        self._lock = threading.Lock()
        self._finalizer: Optional[threading.Thread] = None

    def write(self, image: np.ndarray) -> None:
        with self._lock:
            if self._stopped or self._error is not None:
                return
            if image.ndim == 2:
                image = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
            try:
                if self._writer is None:
                    h, w = image.shape[:2]
                    writer = cv2.VideoWriter(
                        str(self.path), cv2.VideoWriter_fourcc(*self.fourcc), self.fps, (w, h)
                    )
                    if not writer.isOpened():
                        self._error = f"Failed to open video writer for {self.path}"
                        logging.error(self._error)
                        return
                    self._writer = writer
                    logging.info(f"Recording to {self.path} ({w}x{h} @ {self.fps:.1f} fps)")
                self._writer.write(image)
                self.frames_written += 1
            except cv2.error as e:
                self._error = f"Video writer error: {e}"
                logging.error(self._error)

    def stop(self) -> None:
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
        self._finalizer = threading.Thread(target=self._finalize, daemon=True, name="video-finalize")
        self._finalizer.start()

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for finalization to complete (mainly for tests and shutdown)."""
        if self._finalizer is not None:
            self._finalizer.join(timeout)

    def _finalize(self) -> None:
        with self._lock:
            writer = self._writer
            self._writer = None
            error = self._error
            frames = self.frames_written

        try:
            if writer is not None:
                try:
                    writer.release()
                except cv2.error as e:
                    error = error or f"Video writer error: {e}"

            if self.on_done is not None:
                self.on_done(self)

            if error is None and frames == 0:
                error = "No frames recorded"
            if error is not None:
                self._discard()
        except Exception as e:
            logging.error(f"Error finalizing {self.path}: {e}")
            error = error or f"Finalize failed: {e}"

        # Exactly one terminal event per capture
        if error is not None:
            self.on_finished(False, None, error)
        else:
            logging.info(f"Finalized {self.path} ({frames} frames)")
            self.on_finished(True, str(self.path), None)

    def _discard(self) -> None:
        try:
            if self.path.exists():
                self.path.unlink()
        except OSError as e:
            logging.warning(f"Could not delete failed recording {self.path}: {e}")


class VideoFileBackend(CaptureBackend):
    """
    Writes recordings into output_dir.

    Args:
        output_dir: Directory for recordings; created if missing.
        fps: Frame rate stamped into the file.
        fourcc: Four-character codec code.
    """

    def __init__(self, output_dir: str, fps: float = 30.0, fourcc: str = "mp4v"):
        self.output_dir = Path(output_dir)
        self.fps = fps
        self.fourcc = fourcc
        self._active: Optional[VideoFileCapture] = None
        self._lock = threading.Lock()

    @property
    def active(self) -> Optional[VideoFileCapture]:
        return self._active

    def start(self, on_finished: FinishedCallback) -> VideoFileCapture:
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise RuntimeError(f"Cannot create output directory {self.output_dir}: {e}") from e

        path = self.output_dir / ride_filename(datetime.now())
        capture = VideoFileCapture(path, self.fps, self.fourcc, on_finished, on_done=self._on_done)
        with self._lock:
            self._active = capture
        return capture

    def write(self, image: np.ndarray) -> None:
        """Append a frame to the active capture; ignored when nothing is recording."""
        capture = self._active
        if capture is not None:
            capture.write(image)

    def _on_done(self, capture: VideoFileCapture) -> None:
        with self._lock:
            if self._active is capture:
                self._active = None
