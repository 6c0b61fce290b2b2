"""
Sparse optical-flow rider detector.

Frames are reduced to a fixed 160x120 working resolution. Corner features are
picked with a Harris response on a coarse grid and tracked frame to frame by
SSD template matching. A rider shows up as several flow vectors of moderate
length pointing the same way; camera noise gives short or scattered vectors.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional, Tuple

import cv2
import numpy as np

from models.detection import DetectionResult, FeaturePoint, FlowVector
from models.frame import FrameSample
from models.options import ConfigOption, ConfigType
from models.overlay import FlowOverlay, OverlaySink

from .base import RiderDetector


WORK_WIDTH = 160
WORK_HEIGHT = 120

GRID_STEP = 15
HARRIS_HALF_WINDOW = 2
HARRIS_K = 0.04
CORNER_THRESHOLD = 5000.0

TEMPLATE_SIZE = 7
SEARCH_RADIUS = 8
SEARCH_STEP = 2
MAX_SSD = 50000

COHERENCE_TOLERANCE = math.pi / 3
MIN_MEAN_MAGNITUDE = 4.0
MAX_MEAN_MAGNITUDE = 30.0


class OpticalFlowDetector(RiderDetector):
    display_name = "Fast Optical Flow Detection"
    description = "Tracks corner features between frames and looks for coherent motion"

    def __init__(
        self,
        max_features: int = 20,
        min_feature_distance: int = 20,
        flow_threshold: float = 3.0,
        min_coherent_vectors: int = 4,
        max_vector_magnitude: float = 40.0,
        show_flow_overlay: bool = True,
        overlay_sink: Optional[OverlaySink] = None,
    ):
        super().__init__(overlay_sink=overlay_sink)
        self.max_features = max_features
        self.min_feature_distance = min_feature_distance
        self.flow_threshold = flow_threshold
        self.min_coherent_vectors = min_coherent_vectors
        self.max_vector_magnitude = max_vector_magnitude
        self.show_flow_overlay = show_flow_overlay

        self._previous: Optional[np.ndarray] = None
        self._features: List[FeaturePoint] = []

    @property
    def features(self) -> List[FeaturePoint]:
        """Features carried into the next frame."""
        return list(self._features)

    def get_config_options(self) -> Dict[str, ConfigOption]:
        options = [
            ConfigOption(
                key="max_features",
                display_name="Maximum Features",
                description="Maximum number of feature points to track",
                type=ConfigType.INTEGER,
                default=20,
                min_value=10,
                max_value=50,
            ),
            ConfigOption(
                key="min_feature_distance",
                display_name="Minimum Feature Distance",
                description="Minimum distance between detected features (pixels)",
                type=ConfigType.INTEGER,
                default=20,
                min_value=10,
                max_value=40,
            ),
            ConfigOption(
                key="flow_threshold",
                display_name="Flow Threshold",
                description="Minimum motion magnitude to be considered valid flow",
                type=ConfigType.FLOAT,
                default=3.0,
                min_value=1.0,
                max_value=10.0,
            ),
            ConfigOption(
                key="min_coherent_vectors",
                display_name="Minimum Coherent Vectors",
                description="Minimum number of aligned motion vectors for rider detection",
                type=ConfigType.INTEGER,
                default=4,
                min_value=2,
                max_value=15,
            ),
            ConfigOption(
                key="max_vector_magnitude",
                display_name="Maximum Vector Magnitude",
                description="Moves longer than this are treated as tracking errors",
                type=ConfigType.FLOAT,
                default=40.0,
                min_value=10.0,
                max_value=80.0,
            ),
            ConfigOption(
                key="show_flow_overlay",
                display_name="Show Flow Overlay",
                description="Emit flow vectors for debugging",
                type=ConfigType.BOOLEAN,
                default=True,
            ),
        ]
        return {o.key: o for o in options}

    def _apply_option(self, key: str, value: Any) -> None:
        setattr(self, key, value)

    def _detect(self, frame: FrameSample) -> DetectionResult:
        current: Optional[np.ndarray] = None
        previous = self._previous
        try:
            current = cv2.resize(frame.gray, (WORK_WIDTH, WORK_HEIGHT), interpolation=cv2.INTER_NEAREST)
            if previous is None or not self._features:
                self._features = self.detect_features(current)
                return DetectionResult.negative(f"First frame - detected {len(self._features)} features")
            return self._track(previous, current)
        except Exception as e:
            logging.error(f"Optical flow processing error: {e}")
            return DetectionResult.negative(f"Processing error: {e}")
        finally:
            if current is not None:
                self._previous = current

    def _track(self, previous: np.ndarray, current: np.ndarray) -> DetectionResult:
        vectors: List[FlowVector] = []
        survivors: List[FeaturePoint] = []

        for feature in self._features:
            moved = self.track_feature(previous, current, feature)
            if moved is None:
                continue
            vector = FlowVector.between(feature, moved)
            if vector.magnitude > self.max_vector_magnitude:
                continue
            survivors.append(moved)
            if self.flow_threshold < vector.magnitude < self.max_vector_magnitude:
                vectors.append(vector)

        detected, mean_magnitude = self.analyze_vectors(vectors)
        confidence = self.confidence_for(vectors)

        if len(survivors) < self.max_features // 2:
            fresh = [
                f for f in self.detect_features(current)
                if all(f.distance_to(s) >= self.min_feature_distance for s in survivors)
            ]
            self._features = (survivors + fresh)[: self.max_features]
        else:
            self._features = survivors

        if self.show_flow_overlay:
            self._emit_overlay(
                FlowOverlay(vectors=vectors, features=list(self._features), frame_size=(WORK_WIDTH, WORK_HEIGHT))
            )

        debug = f"Vectors: {len(vectors)}, Features: {len(self._features)}, AvgMag: {mean_magnitude:.1f}"
        logging.debug(debug)
        return DetectionResult(rider_detected=detected, confidence=confidence, debug_info=debug)

    def detect_features(self, image: np.ndarray) -> List[FeaturePoint]:
        """Pick up to max_features well-separated Harris corners on a coarse grid."""
        h, w = image.shape[:2]
        gx, gy = _gradients(image)
        features: List[FeaturePoint] = []

        for y in range(GRID_STEP, h - GRID_STEP, GRID_STEP):
            for x in range(GRID_STEP, w - GRID_STEP, GRID_STEP):
                strength = _harris_response(gx, gy, x, y)
                if strength > CORNER_THRESHOLD:
                    candidate = FeaturePoint(x, y, strength)
                    if all(candidate.distance_to(f) >= self.min_feature_distance for f in features):
                        features.append(candidate)
                if len(features) >= self.max_features:
                    return features
        return features

    @staticmethod
    def track_feature(previous: np.ndarray, current: np.ndarray, feature: FeaturePoint) -> Optional[FeaturePoint]:
        """Find the feature's new position by minimum-SSD template search, or None if lost."""
        h, w = previous.shape[:2]
        half = TEMPLATE_SIZE // 2
        fx, fy = feature.x, feature.y
        if fx < half or fy < half or fx >= w - half or fy >= h - half:
            return None

        template = previous[fy - half:fy + half + 1, fx - half:fx + half + 1].astype(np.int32)
        best: Optional[Tuple[int, int]] = None
        best_score = None

        for dy in range(-SEARCH_RADIUS, SEARCH_RADIUS + 1, SEARCH_STEP):
            ny = fy + dy
            if ny < half or ny >= h - half:
                continue
            for dx in range(-SEARCH_RADIUS, SEARCH_RADIUS + 1, SEARCH_STEP):
                nx = fx + dx
                if nx < half or nx >= w - half:
                    continue
                patch = current[ny - half:ny + half + 1, nx - half:nx + half + 1].astype(np.int32)
                score = int(np.sum((patch - template) ** 2))
                if best_score is None or score < best_score:
                    best_score = score
                    best = (nx, ny)

        if best is None or best_score >= MAX_SSD:
            return None
        return FeaturePoint(best[0], best[1])

    def analyze_vectors(self, vectors: List[FlowVector]) -> Tuple[bool, float]:
        """Return (rider_detected, mean_magnitude) for the filtered vectors."""
        if not vectors:
            return False, 0.0
        mean_magnitude = sum(v.magnitude for v in vectors) / len(vectors)
        mean_angle = math.atan2(
            sum(math.sin(v.angle) for v in vectors) / len(vectors),
            sum(math.cos(v.angle) for v in vectors) / len(vectors),
        )

        coherent = 0
        for v in vectors:
            diff = abs(v.angle - mean_angle) % (2 * math.pi)
            if min(diff, 2 * math.pi - diff) < COHERENCE_TOLERANCE:
                coherent += 1

        in_band = MIN_MEAN_MAGNITUDE < mean_magnitude < MAX_MEAN_MAGNITUDE
        return coherent >= self.min_coherent_vectors and in_band, mean_magnitude

    @staticmethod
    def confidence_for(vectors: List[FlowVector]) -> float:
        if not vectors:
            return 0.0
        mean_magnitude = sum(v.magnitude for v in vectors) / len(vectors)
        magnitude_score = min(1.0, mean_magnitude / 15.0)
        count_score = min(1.0, len(vectors) / 15.0)
        return min(1.0, max(0.0, 0.6 * magnitude_score + 0.4 * count_score))

    def reset(self) -> None:
        self._previous = None
        self._features = []


def _gradients(image: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Central-difference gradients; border pixels are zero."""
    img = image.astype(np.float32)
    gx = np.zeros_like(img)
    gy = np.zeros_like(img)
    gx[1:-1, 1:-1] = (img[1:-1, 2:] - img[1:-1, :-2]) / 2.0
    gy[1:-1, 1:-1] = (img[2:, 1:-1] - img[:-2, 1:-1]) / 2.0
    return gx, gy


def _harris_response(gx: np.ndarray, gy: np.ndarray, x: int, y: int) -> float:
    h, w = gx.shape
    y0, y1 = max(0, y - HARRIS_HALF_WINDOW), min(h, y + HARRIS_HALF_WINDOW + 1)
    x0, x1 = max(0, x - HARRIS_HALF_WINDOW), min(w, x + HARRIS_HALF_WINDOW + 1)
    wx = gx[y0:y1, x0:x1]
    wy = gy[y0:y1, x0:x1]
    ixx = float(np.sum(wx * wx))
    iyy = float(np.sum(wy * wy))
    ixy = float(np.sum(wx * wy))
    det = ixx * iyy - ixy * ixy
    trace = ixx + iyy
    return det - HARRIS_K * trace * trace
