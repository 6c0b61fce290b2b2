"""
Presence-driven recording: state machine, presence hysteresis and capture backends.
"""

from .backend import ActiveCapture, CaptureBackend, FinishedCallback
from .controller import RecordingController, RecordingListener, RecordingState
from .presence import PresenceListener, PresenceTracker
from .video_writer import VideoFileBackend, VideoFileCapture

__all__ = [
    "ActiveCapture",
    "CaptureBackend",
    "FinishedCallback",
    "RecordingController",
    "RecordingListener",
    "RecordingState",
    "PresenceListener",
    "PresenceTracker",
    "VideoFileBackend",
    "VideoFileCapture",
]
