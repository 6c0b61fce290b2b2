"""
Recording state machine.

IDLE -> RECORDING -> SAVING -> IDLE on success,
IDLE -> RECORDING -> ERROR -> IDLE on failure.
SAVING and ERROR return to IDLE on their own after a short delay.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .backend import ActiveCapture, CaptureBackend


class RecordingState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    SAVING = "saving"
    ERROR = "error"


@dataclass
class RecordingListener:
    """Optional callbacks for recording events. Exceptions raised here are logged and ignored."""
    on_state_changed: Optional[Callable[[RecordingState], None]] = None
    on_finished: Optional[Callable[[bool, Optional[str], Optional[str]], None]] = None


class RecordingController:
    """
    Drives a CaptureBackend and owns the RecordingState.

    start() and the capture callbacks may arrive on different threads, so the
    check-and-set of the state is done under a lock. Every start() gets a
    generation number; terminal events from a capture that release() has
    superseded are dropped.
    """

    def __init__(
        self,
        backend: CaptureBackend,
        listener: Optional[RecordingListener] = None,
        saving_reset_delay: float = 2.0,
        error_reset_delay: float = 3.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.backend = backend
        self.listener = listener or RecordingListener()
        self.saving_reset_delay = saving_reset_delay
        self.error_reset_delay = error_reset_delay
        self.clock = clock

        self._lock = threading.Lock()
        self._state = RecordingState.IDLE
        self._started_at: Optional[float] = None
        self._capture: Optional[ActiveCapture] = None
        self._stopping = False
        self._generation = 0
        self._reset_timer: Optional[threading.Timer] = None

    @property
    def state(self) -> RecordingState:
        return self._state

    @property
    def recording_started_at(self) -> Optional[float]:
        return self._started_at

    @property
    def is_recording(self) -> bool:
        return self._state is RecordingState.RECORDING

    def elapsed(self, now: Optional[float] = None) -> float:
        """Seconds since the current recording started, or 0 when not recording."""
        started = self._started_at
        if started is None:
            return 0.0
        return (self.clock() if now is None else now) - started

    def start(self) -> bool:
        """
        Start a recording.

        Returns False without changing anything unless the state is IDLE.
        Returns False after moving to ERROR if the backend fails to start.
        """
        with self._lock:
            if self._state is not RecordingState.IDLE or self._capture is not None:
                logging.warning(f"Cannot start recording in state {self._state.value}")
                return False
            self._cancel_reset_timer()
            self._generation += 1
            generation = self._generation
            self._state = RecordingState.RECORDING
            self._started_at = self.clock()
            self._stopping = False

        logging.info("Recording started")
        self._notify_state(RecordingState.RECORDING)

        try:
            capture = self.backend.start(
                lambda success, uri, error: self._on_capture_finished(generation, success, uri, error)
            )
        except Exception as e:
            logging.error(f"Failed to start capture: {e}")
            self._on_capture_finished(generation, False, None, f"Capture start failed: {e}")
            return False

        orphaned = False
        with self._lock:
            if generation != self._generation:
                orphaned = True
            elif self._state is RecordingState.RECORDING:
                self._capture = capture
        if orphaned:
            # release() ran while the backend was starting
            self._stop_capture(capture)
            return False
        return True

    def stop(self) -> None:
        """Request the active capture to finalize. Idempotent."""
        with self._lock:
            capture = self._capture
            if capture is None:
                logging.debug(f"Stop requested with no active capture (state {self._state.value})")
                return
            if self._stopping:
                return
            self._stopping = True
            generation = self._generation

        logging.info(f"Stopping recording after {self.elapsed():.1f}s")
        try:
            capture.stop()
        except Exception as e:
            logging.error(f"Failed to stop capture: {e}")
            self._on_capture_finished(generation, False, None, f"Capture stop failed: {e}")

    def release(self) -> None:
        """Cancel pending resets, stop any active capture and return to IDLE."""
        with self._lock:
            self._cancel_reset_timer()
            capture = self._capture
            self._capture = None
            self._generation += 1
            changed = self._state is not RecordingState.IDLE
            self._state = RecordingState.IDLE
            self._started_at = None
            self._stopping = False

        if capture is not None:
            self._stop_capture(capture)
        if changed:
            self._notify_state(RecordingState.IDLE)

    def _on_capture_finished(
        self, generation: int, success: bool, uri: Optional[str], error: Optional[str]
    ) -> None:
        with self._lock:
            if generation != self._generation or self._state is not RecordingState.RECORDING:
                logging.debug(f"Ignoring stale capture event (success={success})")
                return
            self._capture = None
            self._started_at = None
            self._stopping = False
            if success:
                self._state = RecordingState.SAVING
                self._schedule_reset(RecordingState.SAVING, self.saving_reset_delay, generation)
            else:
                self._state = RecordingState.ERROR
                self._schedule_reset(RecordingState.ERROR, self.error_reset_delay, generation)
            state = self._state

        if success:
            logging.info(f"Recording saved: {uri}")
        else:
            logging.error(f"Recording failed: {error}")
        self._notify_state(state)
        if self.listener.on_finished is not None:
            try:
                self.listener.on_finished(success, uri, error)
            except Exception as e:
                logging.warning(f"Recording finished callback failed: {e}")

    def _schedule_reset(self, expected: RecordingState, delay: float, generation: int) -> None:
        # Caller holds the lock.
        self._cancel_reset_timer()
        timer = threading.Timer(delay, self._auto_reset, args=(expected, generation))
        timer.daemon = True
        self._reset_timer = timer
        timer.start()

    def _cancel_reset_timer(self) -> None:
        if self._reset_timer is not None:
            self._reset_timer.cancel()
            self._reset_timer = None

    def _auto_reset(self, expected: RecordingState, generation: int) -> None:
        with self._lock:
            if self._state is not expected or generation != self._generation:
                return
            self._state = RecordingState.IDLE
            self._reset_timer = None
        logging.debug(f"Recording state reset to idle from {expected.value}")
        self._notify_state(RecordingState.IDLE)

    def _stop_capture(self, capture: ActiveCapture) -> None:
        try:
            capture.stop()
        except Exception as e:
            logging.warning(f"Error stopping capture during release: {e}")

    def _notify_state(self, state: RecordingState) -> None:
        if self.listener.on_state_changed is None:
            return
        try:
            self.listener.on_state_changed(state)
        except Exception as e:
            logging.warning(f"Recording state callback failed: {e}")
