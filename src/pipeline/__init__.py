"""
Pipeline module for the rider monitor.

The pipeline orchestrates the processing flow:
- Frame acquisition from observation sources
- Rider detection via the detector manager
- Presence tracking and recording start/stop
"""

from .engine import (
    RiderMonitorEngine,
    PipelineConfig,
    PipelineStats,
    create_engine_from_config,
    create_pose_estimator_factory,
)

__all__ = [
    "RiderMonitorEngine",
    "PipelineConfig",
    "PipelineStats",
    "create_engine_from_config",
    "create_pose_estimator_factory",
]
