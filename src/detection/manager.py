"""
Detector manager.

Owns the single live RiderDetector, swaps it at runtime, and guarantees that
only one process() call runs against it at a time.
"""

from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from inference.backend import PoseEstimator
from models.detection import DetectionResult
from models.frame import FrameSample
from models.options import ConfigOption
from models.overlay import OverlaySink

from .base import RiderDetector
from .hybrid import HybridDetector
from .motion import MotionDetector
from .optical_flow import OpticalFlowDetector
from .pose import PoseDetector


class DetectorType(str, Enum):
    POSE = "pose"
    MOTION = "motion"
    OPTICAL_FLOW = "optical_flow"
    HYBRID = "hybrid"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @classmethod
    def ids(cls) -> List[str]:
        return [t.value for t in cls]


_DISPLAY_NAMES = {
    DetectorType.POSE: PoseDetector.display_name,
    DetectorType.MOTION: MotionDetector.display_name,
    DetectorType.OPTICAL_FLOW: OpticalFlowDetector.display_name,
    DetectorType.HYBRID: HybridDetector.display_name,
}


class DetectorManager:
    """
    Holds exactly one detector and serializes access to it.

    Args:
        detector_type: Initial detector id; None starts without a detector.
        pose_estimator_factory: Builds a PoseEstimator for pose and hybrid detectors.
        settings: Initial settings map applied to every detector built.
        overlay_sink: Optional consumer for debug overlays.
        on_processing_time: Called with each frame's processing latency in ms.
        pose_timeout_s: Upper bound on waiting for one pose result.
    """

    def __init__(
        self,
        detector_type: Optional[str] = DetectorType.MOTION.value,
        pose_estimator_factory: Optional[Callable[[], PoseEstimator]] = None,
        settings: Optional[Mapping[str, Any]] = None,
        overlay_sink: Optional[OverlaySink] = None,
        on_processing_time: Optional[Callable[[float], None]] = None,
        pose_timeout_s: float = 2.0,
    ):
        self.pose_estimator_factory = pose_estimator_factory
        self.overlay_sink = overlay_sink
        self.on_processing_time = on_processing_time
        self.pose_timeout_s = pose_timeout_s

        self._settings: Dict[str, Any] = dict(settings or {})
        self._enabled = True
        self._lock = threading.Lock()
        self._detector: Optional[RiderDetector] = None
        self._detector_type: Optional[DetectorType] = None
        self.last_processing_ms: Optional[float] = None

        if detector_type is not None:
            self.switch_detector(detector_type)

    @property
    def detector(self) -> Optional[RiderDetector]:
        return self._detector

    @property
    def detector_type(self) -> Optional[DetectorType]:
        return self._detector_type

    @staticmethod
    def resolve_type(type_id: str) -> DetectorType:
        """Map a type id to a DetectorType; unknown ids fall back to pose."""
        try:
            return DetectorType(type_id)
        except ValueError:
            logging.warning(f"Unknown detector type '{type_id}', falling back to {DetectorType.POSE.value}")
            return DetectorType.POSE

    def _create_detector(self, detector_type: DetectorType) -> RiderDetector:
        if detector_type is DetectorType.MOTION:
            return MotionDetector(overlay_sink=self.overlay_sink)
        if detector_type is DetectorType.OPTICAL_FLOW:
            return OpticalFlowDetector(overlay_sink=self.overlay_sink)

        if self.pose_estimator_factory is None:
            raise ValueError(f"Detector '{detector_type.value}' needs a pose estimator factory")
        pose = PoseDetector(
            self.pose_estimator_factory(),
            timeout_s=self.pose_timeout_s,
            overlay_sink=self.overlay_sink,
        )
        if detector_type is DetectorType.POSE:
            return pose
        return HybridDetector(pose=pose, overlay_sink=self.overlay_sink)

    def switch_detector(self, type_id: str) -> RiderDetector:
        """
        Replace the live detector.

        Waits for any in-flight process() call, builds the new detector with the
        current settings and enabled flag, then releases the old one. If building
        fails the old detector stays active and the error is raised.
        """
        detector_type = self.resolve_type(type_id)
        with self._lock:
            try:
                detector = self._create_detector(detector_type)
                detector.configure(self._settings)
                detector.set_enabled(self._enabled)
            except Exception as e:
                kept = self._detector_type.value if self._detector_type else "none"
                logging.error(f"Failed to create detector '{detector_type.value}' (keeping {kept}): {e}")
                raise

            old = self._detector
            self._detector = detector
            self._detector_type = detector_type
            if old is not None:
                old.release()

        logging.info(f"Switched to detector: {detector.display_name}")
        return detector

    def process_frame(self, frame: FrameSample) -> Optional[DetectionResult]:
        """
        Run the live detector on one frame and close the frame.

        Returns None when no detector is active. Detector exceptions are logged
        and turned into a negative result.
        """
        try:
            with self._lock:
                detector = self._detector
                if detector is None:
                    logging.warning("No detector available for frame processing")
                    return None

                start = time.perf_counter()
                try:
                    result = detector.process(frame)
                except Exception as e:
                    logging.error(f"Error processing frame {frame.frame_index}: {e}")
                    result = DetectionResult.negative(f"Processing error: {e}")
                elapsed_ms = (time.perf_counter() - start) * 1000.0
                self.last_processing_ms = elapsed_ms
        finally:
            frame.close()

        if self.on_processing_time is not None:
            try:
                self.on_processing_time(elapsed_ms)
            except Exception as e:
                logging.warning(f"Processing time callback failed: {e}")
        return result

    def configure(self, settings: Mapping[str, Any]) -> None:
        """Merge settings into the manager's map and apply them to the live detector."""
        with self._lock:
            self._settings.update(settings)
            if self._detector is not None:
                self._detector.configure(settings)

    @property
    def settings(self) -> Dict[str, Any]:
        return dict(self._settings)

    def get_config_options(self) -> Dict[str, ConfigOption]:
        detector = self._detector
        return detector.get_config_options() if detector is not None else {}

    def available_detectors(self) -> List[DetectorType]:
        return list(DetectorType)

    def current_detector_info(self) -> Optional[Tuple[str, str]]:
        """Return (display_name, description) of the live detector, if any."""
        detector = self._detector
        if detector is None:
            return None
        return detector.display_name, detector.description

    def set_detector_enabled(self, enabled: bool) -> None:
        with self._lock:
            self._enabled = bool(enabled)
            if self._detector is not None:
                self._detector.set_enabled(enabled)

    @property
    def detector_enabled(self) -> bool:
        return self._enabled

    def reset(self) -> None:
        with self._lock:
            if self._detector is not None:
                self._detector.reset()

    def release(self) -> None:
        with self._lock:
            if self._detector is not None:
                self._detector.release()
            self._detector = None
            self._detector_type = None
