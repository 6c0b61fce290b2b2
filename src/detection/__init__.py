"""
Rider Monitor - Detection Module

Pluggable rider detectors and the manager that switches between them.
"""

from .base import RiderDetector
from .motion import MotionDetector
from .optical_flow import OpticalFlowDetector
from .pose import PoseDetector
from .hybrid import HybridDetector
from .manager import DetectorManager, DetectorType

__all__ = [
    'RiderDetector',
    'MotionDetector',
    'OpticalFlowDetector',
    'PoseDetector',
    'HybridDetector',
    'DetectorManager',
    'DetectorType',
]
