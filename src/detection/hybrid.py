"""
Hybrid rider detector: pose model plus frame-difference motion.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

from models.detection import DetectionResult
from models.frame import FrameSample
from models.options import ConfigOption, ConfigType
from models.overlay import OverlaySink

from .base import RiderDetector
from .motion import MotionDetector
from .pose import PoseDetector


POSE_PREFIX = "pose_"
MOTION_PREFIX = "motion_"


class HybridDetector(RiderDetector):
    """
    Combines a PoseDetector and a MotionDetector on the same frame.

    The combined score is pose.confidence * pose_weight +
    motion.confidence * motion_weight. Weights are independent and not
    normalized. With require_both, detection is the AND of the two children
    and the combined score is informational only.

    Child options are exposed under the pose_ and motion_ prefixes.
    """

    display_name = "Hybrid Detection"
    description = "Combines pose and motion detection with weighted scoring or a both-required rule"

    def __init__(
        self,
        pose: PoseDetector,
        motion: Optional[MotionDetector] = None,
        pose_weight: float = 0.7,
        motion_weight: float = 0.3,
        combined_threshold: float = 0.4,
        require_both: bool = False,
        overlay_sink: Optional[OverlaySink] = None,
    ):
        super().__init__(overlay_sink=overlay_sink)
        self.pose = pose
        self.motion = motion if motion is not None else MotionDetector(overlay_sink=overlay_sink)
        self.pose_weight = pose_weight
        self.motion_weight = motion_weight
        self.combined_threshold = combined_threshold
        self.require_both = require_both

    def _own_options(self) -> Dict[str, ConfigOption]:
        options = [
            ConfigOption(
                key="pose_weight",
                display_name="Pose Weight",
                description="Weight of the pose confidence in the combined score",
                type=ConfigType.FLOAT,
                default=0.7,
                min_value=0.0,
                max_value=1.0,
            ),
            ConfigOption(
                key="motion_weight",
                display_name="Motion Weight",
                description="Weight of the motion confidence in the combined score",
                type=ConfigType.FLOAT,
                default=0.3,
                min_value=0.0,
                max_value=1.0,
            ),
            ConfigOption(
                key="combined_threshold",
                display_name="Combined Threshold",
                description="Combined score needed to report a rider",
                type=ConfigType.FLOAT,
                default=0.4,
                min_value=0.0,
                max_value=1.0,
            ),
            ConfigOption(
                key="require_both",
                display_name="Require Both Detectors",
                description="Only report a rider when pose and motion both detect one",
                type=ConfigType.BOOLEAN,
                default=False,
            ),
        ]
        return {o.key: o for o in options}

    def get_config_options(self) -> Dict[str, ConfigOption]:
        options = self._own_options()
        for child, prefix in ((self.pose, POSE_PREFIX), (self.motion, MOTION_PREFIX)):
            for option in child.get_config_options().values():
                prefixed = option.prefixed(prefix)
                options[prefixed.key] = prefixed
        return options

    def configure(self, settings: Mapping[str, Any]) -> None:
        own = self._own_options()
        # Own keys win over a child key that happens to share the prefix.
        super().configure({k: v for k, v in settings.items() if k in own})

        pose_settings = {
            k[len(POSE_PREFIX):]: v for k, v in settings.items()
            if k.startswith(POSE_PREFIX) and k not in own
        }
        motion_settings = {
            k[len(MOTION_PREFIX):]: v for k, v in settings.items()
            if k.startswith(MOTION_PREFIX) and k not in own
        }
        if pose_settings:
            self.pose.configure(pose_settings)
        if motion_settings:
            self.motion.configure(motion_settings)

    def _apply_option(self, key: str, value: Any) -> None:
        setattr(self, key, value)

    def _detect(self, frame: FrameSample) -> DetectionResult:
        try:
            motion_result = self.motion.process(frame)
            pose_result = self.pose.process(frame)
        except Exception as e:
            logging.error(f"Hybrid detection error: {e}")
            return DetectionResult.negative(f"Hybrid detection error: {e}")

        combined = pose_result.confidence * self.pose_weight + motion_result.confidence * self.motion_weight
        if self.require_both:
            detected = pose_result.rider_detected and motion_result.rider_detected
        else:
            detected = combined > self.combined_threshold

        debug = (
            f"Hybrid: Pose({'yes' if pose_result.rider_detected else 'no'}, {pose_result.confidence:.2f}) "
            f"Motion({'yes' if motion_result.rider_detected else 'no'}, {motion_result.confidence:.2f}) "
            f"Combined({combined:.2f}, threshold={self.combined_threshold:.2f})"
        )
        if self.require_both:
            debug += " [Both required]"
        logging.debug(debug)
        return DetectionResult(rider_detected=detected, confidence=combined, debug_info=debug)

    def set_enabled(self, enabled: bool) -> None:
        super().set_enabled(enabled)
        self.pose.set_enabled(enabled)
        self.motion.set_enabled(enabled)

    def reset(self) -> None:
        self.pose.reset()
        self.motion.reset()

    def release(self) -> None:
        self.motion.release()
        self.pose.release()
