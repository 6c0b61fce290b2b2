"""
Pose estimator interface.

Estimators run asynchronously and hand back a Future per image so callers can
bound how long they wait on a stuck model.
"""

from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass
from typing import List, Protocol

import numpy as np


@dataclass(frozen=True)
class Landmark:
    """
    A single body keypoint in pixel coordinates.

    likelihood is the model's confidence that the point is visible in frame.
    """

    x: float
    y: float
    likelihood: float


class PoseEstimator(Protocol):
    def estimate(self, image: np.ndarray) -> "Future[List[Landmark]]":
        ...

    def close(self) -> None:
        ...
