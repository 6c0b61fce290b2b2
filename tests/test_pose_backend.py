"""
Tests for the Ultralytics pose adapter, with the model mocked out.
"""

from concurrent.futures import ThreadPoolExecutor
from types import SimpleNamespace
from unittest.mock import MagicMock

import numpy as np

from inference.cpu_backend import CpuPoseConfig, UltralyticsPoseEstimator


def _estimator(results):
    """Build an estimator without loading a real model."""
    estimator = object.__new__(UltralyticsPoseEstimator)
    estimator.cfg = CpuPoseConfig(model="yolov8n-pose.pt", conf_threshold=0.3)
    estimator._model = MagicMock()
    estimator._model.predict.return_value = results
    estimator._executor = ThreadPoolExecutor(max_workers=1)
    return estimator


class _Boxes(SimpleNamespace):
    """Fake Ultralytics ``Boxes``: supports ``len()`` like the real one."""

    def __len__(self):
        return len(self.conf)


def _result(xy, kconf, box_conf):
    return SimpleNamespace(
        keypoints=SimpleNamespace(xy=np.asarray(xy, dtype=np.float32), conf=kconf),
        boxes=_Boxes(conf=np.asarray(box_conf, dtype=np.float32)),
    )


class TestUltralyticsPoseEstimator:
    """Tests for landmark extraction from model results."""

    def test_picks_most_confident_person(self):
        xy = [[[1, 2], [3, 4]], [[10, 20], [30, 40]]]
        kconf = np.array([[0.1, 0.2], [0.8, 0.9]], dtype=np.float32)
        estimator = _estimator([_result(xy, kconf, [0.4, 0.7])])

        landmarks = estimator.estimate(np.zeros((48, 64, 3), dtype=np.uint8)).result(timeout=2.0)
        estimator.close()

        assert [(lm.x, lm.y) for lm in landmarks] == [(10.0, 20.0), (30.0, 40.0)]
        assert [round(lm.likelihood, 2) for lm in landmarks] == [0.8, 0.9]
        _, kwargs = estimator._model.predict.call_args
        assert kwargs["conf"] == 0.3

    def test_no_people(self):
        estimator = _estimator([_result(np.zeros((0, 17, 2)), None, [])])

        assert estimator._predict(np.zeros((8, 8, 3), dtype=np.uint8)) == []
        assert _estimator([])._predict(np.zeros((8, 8, 3), dtype=np.uint8)) == []

    def test_missing_keypoint_confidence_defaults_to_one(self):
        estimator = _estimator([_result([[[5, 6]]], None, [0.9])])

        landmarks = estimator._predict(np.zeros((8, 8, 3), dtype=np.uint8))

        assert landmarks[0].likelihood == 1.0

    def test_gray_input_expanded(self):
        estimator = _estimator([])

        estimator.estimate(np.zeros((8, 8), dtype=np.uint8)).result(timeout=2.0)
        estimator.close()

        _, kwargs = estimator._model.predict.call_args
        assert kwargs["source"].shape == (8, 8, 3)
