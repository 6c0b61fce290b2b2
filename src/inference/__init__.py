"""
Pose inference backends.

The Ultralytics backend is imported lazily so the motion and optical flow
detectors run without it installed.
"""

from .backend import Landmark, PoseEstimator

__all__ = [
    "Landmark",
    "PoseEstimator",
]
