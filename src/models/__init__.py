"""
Typed models for the rider monitor application.

Frames, detector outputs, tunable options, overlays and configuration.
"""

from .frame import FrameSample
from .detection import DetectionResult, FeaturePoint, FlowVector
from .options import ConfigOption, ConfigType
from .overlay import FlowOverlay, MotionMaskOverlay, Overlay, OverlaySink, PoseOverlay
from .config import (
    Config,
    CameraConfig,
    DetectionConfig,
    PoseModelConfig,
    RecordingConfig,
    PipelineSettings,
)

__all__ = [
    # Frame
    "FrameSample",
    # Detection
    "DetectionResult",
    "FeaturePoint",
    "FlowVector",
    # Options
    "ConfigOption",
    "ConfigType",
    # Overlays
    "FlowOverlay",
    "MotionMaskOverlay",
    "Overlay",
    "OverlaySink",
    "PoseOverlay",
    # Config
    "Config",
    "CameraConfig",
    "DetectionConfig",
    "PoseModelConfig",
    "RecordingConfig",
    "PipelineSettings",
]
