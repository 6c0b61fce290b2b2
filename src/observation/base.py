"""
ObservationSource interface for frame producers.

A source yields FrameSample objects from a camera, stream or video file. The
consumer owns each sample it receives and must close() it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional, Tuple

from models.frame import FrameSample


@dataclass
class ObservationConfig:
    """
    Base configuration for observation sources.

    Attributes:
        source_id: Identifier stamped on every frame (e.g., "trail-cam").
        resolution: Requested (width, height). None keeps the source default.
        fps: Requested frame rate. None keeps the source default.
        metadata: Extra source-specific settings.
    """
    source_id: str = "default"
    resolution: Optional[Tuple[int, int]] = None
    fps: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class ObservationSource(ABC):
    """
    Abstract base class for frame producers.

    Usage:
        with OpenCVSource(config) as source:
            for sample in source:
                try:
                    handle(sample)
                finally:
                    sample.close()
    """

    def __init__(self, config: ObservationConfig):
        self._config = config
        self._is_open = False
        self._frame_index = 0

    @property
    def source_id(self) -> str:
        return self._config.source_id

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def frame_index(self) -> int:
        """Number of frames produced since open()."""
        return self._frame_index

    @property
    def is_live(self) -> bool:
        """True for cameras and streams, False for finite sources such as files."""
        return True

    @abstractmethod
    def open(self) -> None:
        """
        Open the source.

        Raises:
            RuntimeError: If the source cannot be opened.
        """
        pass

    @abstractmethod
    def read(self) -> Optional[FrameSample]:
        """Return the next frame, or None when none is available (end of file, camera fault)."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the source. Safe to call more than once."""
        pass

    def __enter__(self) -> "ObservationSource":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __iter__(self) -> Iterator[FrameSample]:
        if not self._is_open:
            raise RuntimeError("Source must be open before iterating")
        while True:
            sample = self.read()
            if sample is None:
                break
            yield sample
