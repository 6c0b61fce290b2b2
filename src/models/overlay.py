"""
Debug visualizations emitted by detectors.

Overlays are purely observational: detectors hand them to an optional sink
and never read them back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Tuple, Union

import numpy as np

from .detection import FeaturePoint, FlowVector


@dataclass(frozen=True)
class MotionMaskOverlay:
    """
    Coarse motion mask from the frame-difference detector.

    Attributes:
        mask: Boolean array at sampled resolution; True where motion exceeded the threshold.
        frame_size: (width, height) of the frame the mask was sampled from.
    """
    mask: np.ndarray
    frame_size: Tuple[int, int]


@dataclass(frozen=True)
class FlowOverlay:
    """Flow vectors and retained features in working-frame coordinates."""
    vectors: List[FlowVector] = field(default_factory=list)
    features: List[FeaturePoint] = field(default_factory=list)
    frame_size: Tuple[int, int] = (0, 0)


@dataclass(frozen=True)
class PoseOverlay:
    """Landmarks returned by the pose model for one frame."""
    landmarks: list = field(default_factory=list)


Overlay = Union[MotionMaskOverlay, FlowOverlay, PoseOverlay]
OverlaySink = Callable[[Overlay], None]
