"""
Detection models shared by all rider detectors.
"""

from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class FeaturePoint:
    """
    A tracked image location.

    Attributes:
        x: Column in working-frame pixels.
        y: Row in working-frame pixels.
        strength: Corner response at detection time (unused while tracking).
    """
    x: int
    y: int
    strength: float = 0.0

    def distance_to(self, other: "FeaturePoint") -> float:
        return math.hypot(self.x - other.x, self.y - other.y)


@dataclass(frozen=True)
class FlowVector:
    """
    Motion of one feature between two consecutive frames.

    Attributes:
        start: Position in the previous frame.
        end: Position in the current frame.
        magnitude: Euclidean length of the move in pixels.
        angle: Direction in radians, atan2(dy, dx).
    """
    start: FeaturePoint
    end: FeaturePoint
    magnitude: float
    angle: float

    @classmethod
    def between(cls, start: FeaturePoint, end: FeaturePoint) -> "FlowVector":
        dx = end.x - start.x
        dy = end.y - start.y
        return cls(
            start=start,
            end=end,
            magnitude=math.hypot(dx, dy),
            angle=math.atan2(dy, dx),
        )


@dataclass(frozen=True)
class DetectionResult:
    """
    Uniform output of every rider detector.

    Confidence is detector-specific and only comparable across detectors
    inside the hybrid weighting. It is clamped into [0, 1]; NaN becomes 0.

    Attributes:
        rider_detected: Whether a rider is judged present in this frame.
        confidence: Detector-specific score in [0, 1].
        debug_info: Human-readable explanation for logs and overlays.
    """
    rider_detected: bool
    confidence: float
    debug_info: str = ""

    def __post_init__(self) -> None:
        confidence = float(self.confidence)
        if math.isnan(confidence):
            confidence = 0.0
        object.__setattr__(self, "confidence", min(1.0, max(0.0, confidence)))
        object.__setattr__(self, "rider_detected", bool(self.rider_detected))

    @classmethod
    def negative(cls, reason: str) -> "DetectionResult":
        """A no-detection result carrying the reason in debug_info."""
        return cls(rider_detected=False, confidence=0.0, debug_info=reason)
