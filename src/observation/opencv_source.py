"""
OpenCV observation source for USB cameras, network streams and video files.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union
from urllib.parse import urlsplit, urlunsplit

import cv2
import numpy as np

from models.config import CameraConfig
from models.frame import FrameSample
from .base import ObservationSource, ObservationConfig


STREAM_SCHEMES = ("rtsp://", "rtsps://", "http://", "https://")


def redact_url(device_id: Union[int, str]) -> str:
    """Hide credentials in stream URLs before they reach the logs."""
    if not isinstance(device_id, str) or "@" not in device_id:
        return str(device_id)
    parts = urlsplit(device_id)
    if parts.password is None:
        return device_id
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return urlunsplit((parts.scheme, f"{parts.username}:***@{host}", parts.path, parts.query, parts.fragment))


@dataclass
class OpenCVSourceConfig(ObservationConfig):
    """
    Configuration for OpenCVSource.

    Attributes:
        device_id: Camera index, stream URL or video file path.
        buffer_size: Capture buffer size for cameras (1 keeps latency low).
        max_retries: Attempts to open the device before giving up.
        swap_rb: Swap red and blue channels.
        rotate: Rotation in degrees (0, 90, 180, 270).
        flip_horizontal: Mirror left-right.
        flip_vertical: Mirror top-bottom.
    """
    device_id: Union[int, str] = 0
    buffer_size: int = 1
    max_retries: int = 3
    swap_rb: bool = False
    rotate: int = 0
    flip_horizontal: bool = False
    flip_vertical: bool = False

    @classmethod
    def from_camera_config(cls, camera: CameraConfig, source_id: str = "camera") -> "OpenCVSourceConfig":
        device_id = camera.device_id
        # "0" on the command line means camera 0, not a file called 0
        if isinstance(device_id, str) and device_id.isdigit():
            device_id = int(device_id)
        return cls(
            source_id=source_id,
            resolution=tuple(camera.resolution) if camera.resolution else None,
            fps=camera.fps,
            device_id=device_id,
            swap_rb=camera.swap_rb,
            rotate=camera.rotate or 0,
            flip_horizontal=camera.flip_horizontal,
            flip_vertical=camera.flip_vertical,
        )


class OpenCVSource(ObservationSource):
    """
    Wraps cv2.VideoCapture and produces grayscale FrameSamples that keep the
    color image alongside. Live cameras are reopened after read failures;
    files simply end.
    """

    def __init__(self, config: OpenCVSourceConfig):
        super().__init__(config)
        self._cv_config = config
        self._cap: Optional[cv2.VideoCapture] = None
        self._read_failures = 0

    @property
    def device_id(self) -> Union[int, str]:
        return self._cv_config.device_id

    @property
    def is_stream(self) -> bool:
        return isinstance(self.device_id, str) and self.device_id.startswith(STREAM_SCHEMES)

    @property
    def is_file(self) -> bool:
        return isinstance(self.device_id, str) and not self.is_stream and os.path.exists(self.device_id)

    @property
    def is_live(self) -> bool:
        return not self.is_file

    def open(self) -> None:
        if self._is_open:
            return
        self._connect()
        self._is_open = True
        self._frame_index = 0
        logging.info(f"OpenCVSource opened: source_id={self.source_id}, device={redact_url(self.device_id)}")

    def _connect(self) -> None:
        cfg = self._cv_config
        for attempt in range(1, cfg.max_retries + 1):
            if self._cap is not None:
                self._cap.release()
            self._cap = cv2.VideoCapture(self.device_id)
            if self._cap.isOpened():
                break
            if attempt < cfg.max_retries:
                wait_time = min(2 ** attempt, 10)
                logging.warning(
                    f"Failed to open {redact_url(self.device_id)} (attempt {attempt}/{cfg.max_retries}), "
                    f"retrying in {wait_time}s"
                )
                time.sleep(wait_time)
        else:
            if self._cap is not None:
                self._cap.release()
            self._cap = None
            raise RuntimeError(f"Failed to open device {redact_url(self.device_id)} after {cfg.max_retries} attempts")

        if isinstance(self.device_id, int):
            if cfg.resolution:
                w, h = cfg.resolution
                self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, w)
                self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, h)
            if cfg.fps:
                self._cap.set(cv2.CAP_PROP_FPS, cfg.fps)
            self._cap.set(cv2.CAP_PROP_BUFFERSIZE, cfg.buffer_size)
            logging.info(
                f"Camera settings: {self._cap.get(cv2.CAP_PROP_FRAME_WIDTH):.0f}x"
                f"{self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT):.0f} @ {self._cap.get(cv2.CAP_PROP_FPS):.1f} fps"
            )
        self._read_failures = 0

    def read(self) -> Optional[FrameSample]:
        if not self._is_open or self._cap is None:
            return None

        ok, frame = self._cap.read()
        if not ok or frame is None:
            self._read_failures += 1
            if self.is_file:
                logging.info("End of video file reached")
                return None
            if self._read_failures > 3:
                logging.error("Too many consecutive read failures")
                return None
            logging.warning(f"Failed to read frame (failures: {self._read_failures}), reconnecting")
            try:
                self._connect()
            except RuntimeError as e:
                logging.error(f"Reconnect failed: {e}")
                return None
            ok, frame = self._cap.read()
            if not ok or frame is None:
                return None

        self._read_failures = 0
        self._frame_index += 1
        return FrameSample.from_bgr(
            self._apply_transforms(frame),
            timestamp=time.monotonic(),
            frame_index=self._frame_index,
            source=self.source_id,
        )

    def _apply_transforms(self, frame: np.ndarray) -> np.ndarray:
        cfg = self._cv_config
        rotations = {
            90: cv2.ROTATE_90_CLOCKWISE,
            180: cv2.ROTATE_180,
            270: cv2.ROTATE_90_COUNTERCLOCKWISE,
        }
        if cfg.rotate in rotations:
            frame = cv2.rotate(frame, rotations[cfg.rotate])

        if cfg.flip_horizontal and cfg.flip_vertical:
            frame = cv2.flip(frame, -1)
        elif cfg.flip_horizontal:
            frame = cv2.flip(frame, 1)
        elif cfg.flip_vertical:
            frame = cv2.flip(frame, 0)

        if cfg.swap_rb:
            frame = frame[..., ::-1].copy()
        return frame

    def close(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None
        if self._is_open:
            logging.info(f"OpenCVSource closed: source_id={self.source_id}")
        self._is_open = False

    def get_video_info(self) -> Dict[str, Any]:
        """Report size, frame rate and (for files) frame count of the open source."""
        if self._cap is None or not self._cap.isOpened():
            return {}
        return {
            "width": int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            "height": int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            "fps": self._cap.get(cv2.CAP_PROP_FPS),
            "frame_count": int(self._cap.get(cv2.CAP_PROP_FRAME_COUNT)) if self.is_file else None,
        }
