"""
Observation layer for pluggable frame sources.

Sources hide where frames come from (camera, stream, video file) and hand the
pipeline FrameSample objects. LatestFrameSlot decouples a live producer from
a slower consumer.
"""

from .base import ObservationSource, ObservationConfig
from .opencv_source import OpenCVSource, OpenCVSourceConfig
from .latest import LatestFrameSlot

__all__ = [
    "ObservationSource",
    "ObservationConfig",
    "OpenCVSource",
    "OpenCVSourceConfig",
    "LatestFrameSlot",
]
