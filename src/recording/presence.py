"""
Presence tracking: turns per-frame detection results into recording decisions.

Runs on the single consumer thread, so its state needs no locking.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

from models.detection import DetectionResult

from .controller import RecordingController, RecordingState

if TYPE_CHECKING:
    from detection.manager import DetectorManager


@dataclass
class PresenceListener:
    """Optional callbacks for presence events. Exceptions raised here are logged and ignored."""
    on_rider_detected: Optional[Callable[[DetectionResult], None]] = None
    on_rider_lost: Optional[Callable[[], None]] = None
    on_progress: Optional[Callable[[float], None]] = None
    on_update: Optional[Callable[[DetectionResult], None]] = None


class PresenceTracker:
    """
    Hysteresis between detection results and the recording controller.

    - The first positive after absence may start a recording, subject to the
      controller being IDLE and the start cooldown having elapsed.
    - A recording stops once it has run longer than recording_duration, or
      once the rider has been absent longer than post_rider_delay.
    - Losing the rider never stops a recording by itself.

    All times are in seconds on the same monotonic clock as the controller.
    """

    def __init__(
        self,
        controller: RecordingController,
        listener: Optional[PresenceListener] = None,
        recording_duration: float = 8.0,
        post_rider_delay: float = 2.0,
        recording_cooldown: float = 1.0,
        detector_manager: Optional["DetectorManager"] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.controller = controller
        self.listener = listener or PresenceListener()
        self.recording_duration = recording_duration
        self.post_rider_delay = post_rider_delay
        self.recording_cooldown = recording_cooldown
        self.detector_manager = detector_manager
        self.clock = clock

        self.is_present = False
        self.last_seen_at: Optional[float] = None
        self.last_start_attempt: Optional[float] = None

    def update(self, result: DetectionResult, now: Optional[float] = None) -> None:
        """Feed one detection result."""
        if now is None:
            now = self.clock()

        self._call(self.listener.on_update, result)

        if result.rider_detected:
            self.last_seen_at = now
            if not self.is_present:
                self.is_present = True
                logging.info(f"Rider detected (confidence {result.confidence:.2f}): {result.debug_info}")
                self._call(self.listener.on_rider_detected, result)
                self._maybe_start(now)
        elif self.is_present:
            self.is_present = False
            logging.info("Rider lost")
            self._call(self.listener.on_rider_lost)

        if self.controller.state is RecordingState.RECORDING:
            self._check_stop(now)

    def _maybe_start(self, now: float) -> None:
        state = self.controller.state
        if state is not RecordingState.IDLE:
            logging.debug(f"Rider detected while {state.value}, not starting a recording")
            return
        if self.last_start_attempt is not None and now - self.last_start_attempt <= self.recording_cooldown:
            logging.info(
                f"Skipping recording start: {now - self.last_start_attempt:.3f}s since last attempt "
                f"(cooldown {self.recording_cooldown}s)"
            )
            return
        self.last_start_attempt = now
        if not self.controller.start():
            logging.warning("Recording start was rejected")

    def _check_stop(self, now: float) -> None:
        started_at = self.controller.recording_started_at
        if started_at is None:
            return
        since_start = now - started_at
        seen_at = self.last_seen_at if self.last_seen_at is not None else started_at
        since_seen = now - seen_at

        self._call(self.listener.on_progress, since_start)

        if since_start > self.recording_duration:
            logging.info(f"Recording duration reached ({since_start:.2f}s)")
            self.controller.stop()
        elif not self.is_present and since_seen > self.post_rider_delay:
            logging.info(f"Rider gone for {since_seen:.2f}s, stopping recording")
            self.controller.stop()

    def reset(self) -> None:
        """Clear presence and the cooldown stamp; reset the detector if attached."""
        self.is_present = False
        self.last_seen_at = None
        self.last_start_attempt = None
        if self.detector_manager is not None:
            self.detector_manager.reset()

    def release(self) -> None:
        self.listener = PresenceListener()

    @staticmethod
    def _call(callback: Optional[Callable], *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logging.warning(f"Presence listener failed: {e}")
