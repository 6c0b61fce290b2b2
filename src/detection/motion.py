"""
Frame-difference motion detector.

Compares each frame to the previous one at quarter resolution and counts
sampled pixels whose intensity changed more than a threshold. Cheap and
robust for a fixed camera watching a trail; it cannot tell a rider from any
other large moving object.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import cv2
import numpy as np

from models.detection import DetectionResult
from models.frame import FrameSample
from models.options import ConfigOption, ConfigType
from models.overlay import MotionMaskOverlay, OverlaySink

from .base import RiderDetector


DOWNSCALE = 4
SAMPLE_STRIDE = 4


class MotionDetector(RiderDetector):
    display_name = "Motion Detection"
    description = "Detects riders from pixel changes between consecutive frames"

    def __init__(
        self,
        motion_threshold: int = 30,
        min_motion_area: int = 5000,
        show_motion_overlay: bool = True,
        overlay_sink: Optional[OverlaySink] = None,
    ):
        super().__init__(overlay_sink=overlay_sink)
        self.motion_threshold = motion_threshold
        self.min_motion_area = min_motion_area
        self.show_motion_overlay = show_motion_overlay
        self._previous: Optional[np.ndarray] = None

    def get_config_options(self) -> Dict[str, ConfigOption]:
        options = [
            ConfigOption(
                key="motion_threshold",
                display_name="Motion Threshold",
                description="Minimum per-pixel intensity change counted as motion",
                type=ConfigType.INTEGER,
                default=30,
                min_value=0,
                max_value=255,
            ),
            ConfigOption(
                key="min_motion_area",
                display_name="Minimum Motion Area",
                description="Changed area (sampled pixels x stride^2) needed to report a rider",
                type=ConfigType.INTEGER,
                default=5000,
                min_value=1000,
                max_value=50000,
            ),
            ConfigOption(
                key="show_motion_overlay",
                display_name="Show Motion Overlay",
                description="Emit the sampled motion mask for debugging",
                type=ConfigType.BOOLEAN,
                default=True,
            ),
        ]
        return {o.key: o for o in options}

    def _apply_option(self, key: str, value: Any) -> None:
        setattr(self, key, value)

    def _detect(self, frame: FrameSample) -> DetectionResult:
        try:
            current = self._downscale(frame.gray)
            previous = self._previous
            # Always keep the newest frame, whatever the outcome.
            self._previous = current

            if previous is None:
                return DetectionResult.negative("First frame - no previous frame to compare")
            return self._compare(previous, current, frame)
        except Exception as e:
            logging.error(f"Motion processing error: {e}")
            return DetectionResult.negative(f"Processing error: {e}")

    def _compare(self, previous: np.ndarray, current: np.ndarray, frame: FrameSample) -> DetectionResult:
        h = min(current.shape[0], previous.shape[0])
        w = min(current.shape[1], previous.shape[1])
        cur = current[:h:SAMPLE_STRIDE, :w:SAMPLE_STRIDE].astype(np.int16)
        prev = previous[:h:SAMPLE_STRIDE, :w:SAMPLE_STRIDE].astype(np.int16)
        mask = np.abs(cur - prev) > self.motion_threshold

        motion_pixels = int(np.count_nonzero(mask))
        motion_area = motion_pixels * SAMPLE_STRIDE * SAMPLE_STRIDE
        detected = motion_area > self.min_motion_area
        confidence = min(1.0, motion_area / (self.min_motion_area * 3.0))

        if self.show_motion_overlay:
            self._emit_overlay(MotionMaskOverlay(mask=mask, frame_size=frame.size))

        debug = f"Motion pixels: {motion_pixels}, Area: {motion_area}, Threshold: {self.min_motion_area}"
        logging.debug(debug)
        return DetectionResult(rider_detected=detected, confidence=confidence, debug_info=debug)

    @staticmethod
    def _downscale(gray: np.ndarray) -> np.ndarray:
        h, w = gray.shape[:2]
        size = (max(1, w // DOWNSCALE), max(1, h // DOWNSCALE))
        return cv2.resize(gray, size, interpolation=cv2.INTER_LINEAR)

    def reset(self) -> None:
        self._previous = None
