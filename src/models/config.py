"""
Typed configuration models matching the YAML config structure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union


@dataclass
class CameraConfig:
    """Camera configuration."""
    device_id: Union[int, str] = 0
    resolution: List[int] = field(default_factory=lambda: [1280, 720])
    fps: int = 30
    swap_rb: bool = False
    rotate: int = 0
    flip_horizontal: bool = False
    flip_vertical: bool = False

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CameraConfig":
        """Adapter: Create from config dictionary."""
        return cls(
            device_id=d.get("device_id", 0),
            resolution=d.get("resolution", [1280, 720]),
            fps=d.get("fps", 30),
            swap_rb=d.get("swap_rb", False),
            rotate=d.get("rotate", 0),
            flip_horizontal=d.get("flip_horizontal", False),
            flip_vertical=d.get("flip_vertical", False),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "device_id": self.device_id,
            "resolution": self.resolution,
            "fps": self.fps,
            "swap_rb": self.swap_rb,
            "rotate": self.rotate,
            "flip_horizontal": self.flip_horizontal,
            "flip_vertical": self.flip_vertical,
        }


@dataclass
class PoseModelConfig:
    """External pose model configuration."""
    model: str = ""
    conf_threshold: float = 0.25
    timeout_s: float = 2.0

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "PoseModelConfig":
        return cls(
            model=d.get("model", ""),
            conf_threshold=float(d.get("conf_threshold", 0.25)),
            timeout_s=float(d.get("timeout_s", 2.0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "conf_threshold": self.conf_threshold,
            "timeout_s": self.timeout_s,
        }


@dataclass
class DetectionConfig:
    """
    Detection configuration.

    Attributes:
        type: Detector type id (pose, motion, optical_flow, hybrid).
        sensitivity: Percentage 0-100; higher means a lower pose confidence threshold.
        show_overlay: Whether detectors emit debug overlays.
        pose: Pose model settings (required for pose and hybrid).
        settings: Detector-specific key -> value overrides passed to configure().
    """
    type: str = "motion"
    sensitivity: int = 70
    show_overlay: bool = True
    pose: Optional[PoseModelConfig] = None
    settings: Dict[str, Any] = field(default_factory=dict)

    @property
    def confidence_threshold(self) -> float:
        """Pose confidence threshold derived from the sensitivity percentage."""
        return (100 - self.sensitivity) / 100.0

    def detector_settings(self) -> Dict[str, Any]:
        """Settings map applied to the active detector (explicit settings win)."""
        threshold = self.confidence_threshold
        settings: Dict[str, Any] = {
            "confidence_threshold": threshold,
            "pose_confidence_threshold": threshold,
            "show_overlay": self.show_overlay,
            "show_motion_overlay": self.show_overlay,
            "show_flow_overlay": self.show_overlay,
            "pose_show_overlay": self.show_overlay,
            "motion_show_motion_overlay": self.show_overlay,
        }
        settings.update(self.settings)
        return settings

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DetectionConfig":
        pose_dict = d.get("pose")
        pose = PoseModelConfig.from_dict(pose_dict) if pose_dict else None
        return cls(
            type=d.get("type", "motion"),
            sensitivity=d.get("sensitivity", 70),
            show_overlay=d.get("show_overlay", True),
            pose=pose,
            settings=dict(d.get("settings") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "type": self.type,
            "sensitivity": self.sensitivity,
            "show_overlay": self.show_overlay,
            "settings": dict(self.settings),
        }
        if self.pose:
            d["pose"] = self.pose.to_dict()
        return d


@dataclass
class RecordingConfig:
    """Presence-driven recording timings (seconds) and output location."""
    duration_s: float = 8.0
    post_rider_delay_s: float = 2.0
    cooldown_s: float = 1.0
    saving_reset_delay_s: float = 2.0
    error_reset_delay_s: float = 3.0
    output_dir: str = "output/rides"
    fps: float = 30.0

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "RecordingConfig":
        return cls(
            duration_s=float(d.get("duration_s", 8.0)),
            post_rider_delay_s=float(d.get("post_rider_delay_s", 2.0)),
            cooldown_s=float(d.get("cooldown_s", 1.0)),
            saving_reset_delay_s=float(d.get("saving_reset_delay_s", 2.0)),
            error_reset_delay_s=float(d.get("error_reset_delay_s", 3.0)),
            output_dir=d.get("output_dir", "output/rides"),
            fps=float(d.get("fps", 30.0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "duration_s": self.duration_s,
            "post_rider_delay_s": self.post_rider_delay_s,
            "cooldown_s": self.cooldown_s,
            "saving_reset_delay_s": self.saving_reset_delay_s,
            "error_reset_delay_s": self.error_reset_delay_s,
            "output_dir": self.output_dir,
            "fps": self.fps,
        }


@dataclass
class PipelineSettings:
    """Frame loop settings."""
    keep_latest: bool = True
    max_consecutive_failures: int = 10
    stats_log_interval: float = 60.0

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "PipelineSettings":
        return cls(
            keep_latest=d.get("keep_latest", True),
            max_consecutive_failures=int(d.get("max_consecutive_failures", 10)),
            stats_log_interval=float(d.get("stats_log_interval", 60.0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "keep_latest": self.keep_latest,
            "max_consecutive_failures": self.max_consecutive_failures,
            "stats_log_interval": self.stats_log_interval,
        }


@dataclass
class Config:
    """
    Complete application configuration.

    This is a typed representation of the YAML config structure.
    """
    camera: CameraConfig = field(default_factory=CameraConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    recording: RecordingConfig = field(default_factory=RecordingConfig)
    pipeline: PipelineSettings = field(default_factory=PipelineSettings)
    log_path: str = "logs/rider_monitor.log"
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Config":
        """Adapter: Create Config from raw dictionary (e.g., from load_config)."""
        return cls(
            camera=CameraConfig.from_dict(d.get("camera", {}) or {}),
            detection=DetectionConfig.from_dict(d.get("detection", {}) or {}),
            recording=RecordingConfig.from_dict(d.get("recording", {}) or {}),
            pipeline=PipelineSettings.from_dict(d.get("pipeline", {}) or {}),
            log_path=d.get("log_path", "logs/rider_monitor.log"),
            log_level=d.get("log_level", "INFO"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert back to dictionary (for saving or logging)."""
        return {
            "camera": self.camera.to_dict(),
            "detection": self.detection.to_dict(),
            "recording": self.recording.to_dict(),
            "pipeline": self.pipeline.to_dict(),
            "log_path": self.log_path,
            "log_level": self.log_level,
        }
