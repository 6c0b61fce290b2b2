"""
Tests for the pose-model and hybrid detectors.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from detection.hybrid import HybridDetector
from detection.motion import MotionDetector
from detection.pose import PoseDetector
from models.detection import DetectionResult
from models.frame import FrameSample
from models.overlay import PoseOverlay


def _frame(value=0, color=False):
    if color:
        return FrameSample.from_bgr(np.full((480, 640, 3), value, dtype=np.uint8))
    return FrameSample.from_gray(np.full((480, 640), value, dtype=np.uint8))


class SlowPoseEstimator:
    """Single-worker estimator whose model blocks until the test lets it finish."""

    def __init__(self):
        self.executor = ThreadPoolExecutor(max_workers=1)
        self.proceed = threading.Event()
        self.started = threading.Event()
        self.submitted = 0

    def estimate(self, image):
        self.submitted += 1
        future = self.executor.submit(self._run)
        self.started.wait(timeout=5.0)
        return future

    def _run(self):
        self.started.set()
        self.proceed.wait(timeout=5.0)
        return []

    def close(self):
        self.executor.shutdown(wait=False, cancel_futures=True)


class StubDetector(MotionDetector):
    """Motion detector that returns a canned result."""

    def __init__(self, result):
        super().__init__()
        self.result = result
        self.calls = 0
        self.released = False

    def _detect(self, frame):
        self.calls += 1
        return self.result

    def release(self):
        self.released = True


class TestPoseDetector:
    """Tests for PoseDetector."""

    def test_confident_pose_detected(self, pose_estimator_factory, landmarks):
        estimator = pose_estimator_factory(landmarks(33, 0.9))
        detector = PoseDetector(estimator)

        result = detector.process(_frame())

        assert result.rider_detected is True
        assert result.confidence == pytest.approx(0.9)
        assert "Poses: 33" in result.debug_info

    def test_low_likelihood_not_detected(self, pose_estimator_factory, landmarks):
        detector = PoseDetector(pose_estimator_factory(landmarks(33, 0.4)))

        result = detector.process(_frame())

        assert result.rider_detected is False
        assert result.confidence == pytest.approx(0.4)

    def test_threshold_is_strict(self, pose_estimator_factory, landmarks):
        detector = PoseDetector(pose_estimator_factory(landmarks(10, 0.5)), confidence_threshold=0.5)

        assert detector.process(_frame()).rider_detected is False

    def test_min_poses(self, pose_estimator_factory, landmarks):
        detector = PoseDetector(pose_estimator_factory(landmarks(5, 0.9)))
        detector.configure({"min_poses": 6})

        assert detector.process(_frame()).rider_detected is False

    def test_no_landmarks(self, pose_estimator_factory):
        result = PoseDetector(pose_estimator_factory([])).process(_frame())

        assert result.rider_detected is False
        assert result.confidence == 0.0

    def test_model_failure_is_negative(self, pose_estimator_factory):
        detector = PoseDetector(pose_estimator_factory(error=RuntimeError("model crashed")))

        result = detector.process(_frame())

        assert result == DetectionResult(False, 0.0, "detection failed: model crashed")

    def test_synchronous_failure_is_negative(self, pose_estimator_factory):
        estimator = pose_estimator_factory(error=RuntimeError("bad input"), raise_sync=True)

        result = PoseDetector(estimator).process(_frame())

        assert result.debug_info == "detection failed: bad input"

    def test_timeout_is_negative(self, pose_estimator_factory):
        detector = PoseDetector(pose_estimator_factory(hang=True), timeout_s=0.05)

        result = detector.process(_frame())

        assert result.rider_detected is False
        assert result.debug_info.startswith("detection failed:")

    def test_timed_out_estimate_cancelled(self, pose_estimator_factory):
        estimator = pose_estimator_factory(hang=True)
        detector = PoseDetector(estimator, timeout_s=0.02)

        detector.process(_frame())
        detector.process(_frame())

        assert estimator.calls == 2
        assert all(f.cancelled() for f in estimator.futures)

    def test_slow_model_does_not_build_backlog(self):
        """While the model is still busy with a timed-out frame, new frames are not queued."""
        estimator = SlowPoseEstimator()
        detector = PoseDetector(estimator, timeout_s=0.02)
        try:
            results = [detector.process(_frame()) for _ in range(5)]

            assert estimator.submitted == 1
            assert all(r.debug_info.startswith("detection failed:") for r in results)
            assert results[-1].debug_info == "detection failed: previous estimate still running"

            estimator.proceed.set()
            estimator.executor.submit(lambda: None).result(timeout=5.0)
            result = detector.process(_frame())
            assert estimator.submitted == 2
            assert result.debug_info.startswith("Poses: 0")
        finally:
            estimator.proceed.set()
            detector.release()

    def test_color_image_preferred(self, pose_estimator_factory, landmarks):
        estimator = pose_estimator_factory(landmarks(1, 0.9))
        detector = PoseDetector(estimator)

        detector.process(_frame(color=True))
        detector.process(_frame())

        assert estimator.images[0].ndim == 3
        assert estimator.images[1].ndim == 2

    def test_overlay_emitted(self, pose_estimator_factory, landmarks):
        overlays = []
        detector = PoseDetector(pose_estimator_factory(landmarks(3, 0.9)), overlay_sink=overlays.append)

        detector.process(_frame())

        assert isinstance(overlays[0], PoseOverlay)
        assert len(overlays[0].landmarks) == 3

    def test_release_closes_estimator(self, pose_estimator_factory):
        estimator = pose_estimator_factory()
        PoseDetector(estimator).release()

        assert estimator.closed is True


class TestHybridDetector:
    """Tests for HybridDetector."""

    def _hybrid(self, pose_result, motion_result, **kwargs):
        pose = StubDetector(pose_result)
        motion = StubDetector(motion_result)
        # HybridDetector only needs the detector interface from its pose child
        return HybridDetector(pose=pose, motion=motion, **kwargs), pose, motion

    def test_weighted_sum_confidence(self):
        hybrid, _, _ = self._hybrid(DetectionResult(True, 0.5), DetectionResult(False, 0.2))

        result = hybrid.process(_frame())

        assert result.confidence == pytest.approx(0.5 * 0.7 + 0.2 * 0.3)
        assert result.rider_detected is True  # 0.41 > 0.4

    def test_below_combined_threshold(self):
        hybrid, _, _ = self._hybrid(DetectionResult(True, 0.4), DetectionResult(True, 0.3))

        result = hybrid.process(_frame())

        assert result.confidence == pytest.approx(0.37)
        assert result.rider_detected is False

    def test_weights_not_normalized(self):
        hybrid, _, _ = self._hybrid(
            DetectionResult(True, 1.0), DetectionResult(True, 1.0), pose_weight=1.0, motion_weight=1.0
        )

        assert hybrid.process(_frame()).confidence == 1.0

    @pytest.mark.parametrize("pose_hit,motion_hit", [(True, True), (True, False), (False, True), (False, False)])
    def test_require_both_is_and(self, pose_hit, motion_hit):
        hybrid, _, _ = self._hybrid(
            DetectionResult(pose_hit, 0.9), DetectionResult(motion_hit, 0.9), require_both=True
        )

        result = hybrid.process(_frame())

        assert result.rider_detected is (pose_hit and motion_hit)
        assert "[Both required]" in result.debug_info

    def test_prefixed_options_routed_to_children(self, pose_estimator_factory):
        pose = PoseDetector(pose_estimator_factory())
        motion = MotionDetector()
        hybrid = HybridDetector(pose=pose, motion=motion)

        hybrid.configure({
            "pose_weight": 0.5,
            "combined_threshold": 0.6,
            "pose_min_poses": 4,
            "motion_min_motion_area": 8000,
            "min_motion_area": 1234,
        })

        assert hybrid.pose_weight == 0.5
        assert hybrid.combined_threshold == 0.6
        assert pose.min_poses == 4
        assert motion.min_motion_area == 8000

    def test_options_include_children(self, pose_estimator_factory):
        hybrid = HybridDetector(pose=PoseDetector(pose_estimator_factory()))

        options = hybrid.get_config_options()

        assert {"pose_weight", "motion_weight", "combined_threshold", "require_both"} <= set(options)
        assert "pose_confidence_threshold" in options
        assert "motion_min_motion_area" in options

    def test_child_error_is_negative(self):
        hybrid, pose, _ = self._hybrid(DetectionResult(True, 1.0), DetectionResult(True, 1.0))

        def boom(frame):
            raise ValueError("bad frame")

        pose._detect = boom
        result = hybrid.process(_frame())

        assert result.rider_detected is False
        assert result.debug_info == "Hybrid detection error: bad frame"

    def test_enable_and_release_propagate(self):
        hybrid, pose, motion = self._hybrid(DetectionResult(True, 1.0), DetectionResult(True, 1.0))

        hybrid.set_enabled(False)
        assert pose.enabled is False and motion.enabled is False
        assert hybrid.process(_frame()).debug_info == "Detector disabled"

        hybrid.release()
        assert pose.released and motion.released
