"""
CPU pose estimator backed by an Ultralytics YOLO pose model.

Inference runs on a single worker thread so the frame loop only waits on a
Future and can give up after a timeout.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import List

import numpy as np

from .backend import Landmark, PoseEstimator


@dataclass(frozen=True)
class CpuPoseConfig:
    model: str
    conf_threshold: float = 0.25


class UltralyticsPoseEstimator(PoseEstimator):
    def __init__(self, cfg: CpuPoseConfig):
        self.cfg = cfg
        try:
            from ultralytics import YOLO  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "Ultralytics is not installed. Install with `pip install ultralytics` "
                "or switch detection.type to 'motion' or 'optical_flow'."
            ) from e

        self._model = YOLO(cfg.model)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pose")
        logging.info(f"Loaded pose model {cfg.model}")

    def estimate(self, image: np.ndarray) -> "Future[List[Landmark]]":
        if image.ndim == 2:
            image = np.stack([image] * 3, axis=-1)
        return self._executor.submit(self._predict, image)

    def _predict(self, image: np.ndarray) -> List[Landmark]:
        results = self._model.predict(source=image, conf=self.cfg.conf_threshold, verbose=False)
        if not results:
            return []

        r0 = results[0]
        keypoints = getattr(r0, "keypoints", None)
        boxes = getattr(r0, "boxes", None)
        if keypoints is None or boxes is None or len(boxes) == 0:
            return []

        xy = keypoints.xy.cpu().numpy() if hasattr(keypoints.xy, "cpu") else np.asarray(keypoints.xy)
        kconf = getattr(keypoints, "conf", None)
        if kconf is None:
            likelihoods = np.ones(xy.shape[:2], dtype=np.float32)
        else:
            likelihoods = kconf.cpu().numpy() if hasattr(kconf, "cpu") else np.asarray(kconf)
        conf = boxes.conf.cpu().numpy() if hasattr(boxes.conf, "cpu") else np.asarray(boxes.conf)

        # Only the most confident person counts as the rider.
        best = int(np.argmax(conf))
        return [
            Landmark(x=float(x), y=float(y), likelihood=float(p))
            for (x, y), p in zip(xy[best], likelihoods[best])
        ]

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
