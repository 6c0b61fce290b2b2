"""
Pose-model rider detector.

Wraps an external PoseEstimator. A rider is reported when the model returns
enough landmarks with a high enough mean likelihood.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from typing import Any, Dict, List, Optional

from inference.backend import Landmark, PoseEstimator
from models.detection import DetectionResult
from models.frame import FrameSample
from models.options import ConfigOption, ConfigType
from models.overlay import OverlaySink, PoseOverlay

from .base import RiderDetector


class PoseDetector(RiderDetector):
    display_name = "Pose Detection"
    description = "Runs a pose model and reports a rider when a confident body pose is found"

    def __init__(
        self,
        estimator: PoseEstimator,
        confidence_threshold: float = 0.5,
        min_poses: int = 1,
        show_overlay: bool = True,
        timeout_s: float = 2.0,
        overlay_sink: Optional[OverlaySink] = None,
    ):
        super().__init__(overlay_sink=overlay_sink)
        self.estimator = estimator
        self.confidence_threshold = confidence_threshold
        self.min_poses = min_poses
        self.show_overlay = show_overlay
        self.timeout_s = timeout_s
        # Estimate that timed out but could not be cancelled because the model was already running it
        self._pending: Optional["Future[List[Landmark]]"] = None

    def get_config_options(self) -> Dict[str, ConfigOption]:
        options = [
            ConfigOption(
                key="confidence_threshold",
                display_name="Confidence Threshold",
                description="Minimum mean landmark likelihood (0.0-1.0) for a detection",
                type=ConfigType.FLOAT,
                default=0.5,
                min_value=0.0,
                max_value=1.0,
            ),
            ConfigOption(
                key="min_poses",
                display_name="Minimum Poses",
                description="Minimum number of pose landmarks required for detection",
                type=ConfigType.INTEGER,
                default=1,
                min_value=1,
                max_value=33,
            ),
            ConfigOption(
                key="show_overlay",
                display_name="Show Pose Overlay",
                description="Emit detected landmarks for debugging",
                type=ConfigType.BOOLEAN,
                default=True,
            ),
        ]
        return {o.key: o for o in options}

    def _apply_option(self, key: str, value: Any) -> None:
        setattr(self, key, value)

    def _detect(self, frame: FrameSample) -> DetectionResult:
        if self._pending is not None:
            if not self._pending.done():
                return DetectionResult.negative("detection failed: previous estimate still running")
            self._pending = None

        image = frame.image if frame.image is not None else frame.gray
        future = None
        try:
            future = self.estimator.estimate(image)
            landmarks = future.result(timeout=self.timeout_s)
        except FutureTimeoutError:
            logging.error(f"Pose detection timed out after {self.timeout_s}s")
            if future is not None and not future.cancel():
                self._pending = future
            return DetectionResult.negative(f"detection failed: timed out after {self.timeout_s}s")
        except Exception as e:
            logging.error(f"Pose detection failed: {e}")
            return DetectionResult.negative(f"detection failed: {e}")

        count = len(landmarks)
        confidence = sum(l.likelihood for l in landmarks) / count if count else 0.0
        detected = count >= self.min_poses and confidence > self.confidence_threshold

        if self.show_overlay and landmarks:
            self._emit_overlay(PoseOverlay(landmarks=list(landmarks)))

        debug = f"Poses: {count}, AvgConf: {confidence:.2f}, Threshold: {self.confidence_threshold:.2f}"
        logging.debug(f"Pose result: {debug}, detected: {detected}")
        return DetectionResult(rider_detected=detected, confidence=confidence, debug_info=debug)

    def reset(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def release(self) -> None:
        self.reset()
        self.estimator.close()
