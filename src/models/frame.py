"""
FrameSample model for grayscale frames handed to the detectors.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple

import cv2
import numpy as np


@dataclass(eq=False)
class FrameSample:
    """
    A single grayscale intensity buffer derived from a camera frame.

    The pixel buffer is read-only once the sample exists. The from_* factories
    copy their input, so the producer may reuse its buffer. Whoever consumes the
    sample must call close() exactly once; the release hook runs on the first
    call only.

    Attributes:
        gray: Grayscale pixels as a (height, width) uint8 array.
        width: Frame width in pixels.
        height: Frame height in pixels.
        stride: Row stride of the gray buffer in bytes.
        timestamp: Monotonic timestamp when the frame was captured.
        frame_index: Sequential frame number since the source was opened.
        source: Identifier for the camera/video source.
        image: Optional original BGR frame (used by pose models and recorders).
    """
    gray: np.ndarray
    width: int
    height: int
    stride: int
    timestamp: float
    frame_index: int = 0
    source: Optional[str] = None
    image: Optional[np.ndarray] = None
    on_release: Optional[Callable[["FrameSample"], None]] = field(default=None, repr=False)
    _closed: bool = field(default=False, init=False, repr=False)
    _close_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        # Freeze views so the producer's own arrays stay writeable
        self.gray = self.gray.view()
        self.gray.setflags(write=False)
        if self.image is not None:
            self.image = self.image.view()
            self.image.setflags(write=False)

    @classmethod
    def from_gray(
        cls,
        gray: np.ndarray,
        timestamp: float = 0.0,
        frame_index: int = 0,
        source: Optional[str] = None,
        on_release: Optional[Callable[["FrameSample"], None]] = None,
    ) -> "FrameSample":
        """Create a FrameSample from a 2-D grayscale array."""
        if gray.ndim != 2:
            raise ValueError(f"Expected a 2-D grayscale array, got shape {gray.shape}")
        gray = np.array(gray, dtype=np.uint8, order="C", copy=True)
        h, w = gray.shape
        return cls(
            gray=gray,
            width=w,
            height=h,
            stride=gray.strides[0],
            timestamp=timestamp,
            frame_index=frame_index,
            source=source,
            on_release=on_release,
        )

    @classmethod
    def from_bgr(
        cls,
        frame: np.ndarray,
        timestamp: float = 0.0,
        frame_index: int = 0,
        source: Optional[str] = None,
        on_release: Optional[Callable[["FrameSample"], None]] = None,
    ) -> "FrameSample":
        """Create a FrameSample from a BGR (or already gray) camera frame."""
        if frame.ndim == 2:
            sample = cls.from_gray(frame, timestamp, frame_index, source, on_release)
            return sample
        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
        h, w = gray.shape
        return cls(
            gray=gray,
            width=w,
            height=h,
            stride=gray.strides[0],
            timestamp=timestamp,
            frame_index=frame_index,
            source=source,
            image=np.array(frame, copy=True),
            on_release=on_release,
        )

    @classmethod
    def from_buffer(
        cls,
        buffer: bytes,
        width: int,
        height: int,
        stride: int,
        timestamp: float = 0.0,
        frame_index: int = 0,
        source: Optional[str] = None,
        on_release: Optional[Callable[["FrameSample"], None]] = None,
    ) -> "FrameSample":
        """
        Create a FrameSample from a raw luminance plane.

        Args:
            buffer: Raw bytes of the plane; rows may carry padding.
            width: Visible width in pixels.
            height: Number of rows.
            stride: Bytes per row including padding (must be >= width).
        """
        if stride < width:
            raise ValueError(f"stride ({stride}) must be >= width ({width})")
        data = np.frombuffer(buffer, dtype=np.uint8)
        if data.size < stride * (height - 1) + width:
            raise ValueError(
                f"Buffer too small for {width}x{height} with stride {stride}: {data.size} bytes"
            )
        if data.size < stride * height:
            data = np.pad(data, (0, stride * height - data.size))
        plane = data[: stride * height].reshape(height, stride)[:, :width]
        return cls.from_gray(plane, timestamp, frame_index, source, on_release)

    @property
    def size(self) -> Tuple[int, int]:
        """Return (width, height)."""
        return (self.width, self.height)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Release the underlying frame resource. Later calls are no-ops."""
        with self._close_lock:
            if self._closed:
                logging.warning(f"Frame {self.frame_index} from {self.source} already released")
                return
            self._closed = True
        if self.on_release is not None:
            self.on_release(self)
