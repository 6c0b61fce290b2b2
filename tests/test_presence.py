"""
Tests for presence tracking and recording start/stop decisions.
"""

import pytest

from models.detection import DetectionResult
from recording.controller import RecordingController, RecordingState
from recording.presence import PresenceListener, PresenceTracker


HIT = DetectionResult(True, 0.9, "rider")
MISS = DetectionResult(False, 0.0, "empty")


class IdleController:
    """Controller stub that never leaves IDLE and counts start requests."""

    def __init__(self):
        self.state = RecordingState.IDLE
        self.recording_started_at = None
        self.starts = 0
        self.stops = 0

    def start(self):
        self.starts += 1
        return True

    def stop(self):
        self.stops += 1


class ManualController:
    """Controller stub whose state the test drives directly."""

    def __init__(self):
        self.state = RecordingState.IDLE
        self.recording_started_at = None
        self.starts = 0
        self.stops = 0

    def start(self):
        self.starts += 1
        return True

    def begin(self, at):
        self.state = RecordingState.RECORDING
        self.recording_started_at = at

    def stop(self):
        self.stops += 1


class TestEdges:
    """Tests for presence edges and the start cooldown."""

    def test_enter_edge_starts_recording(self, capture_backend, fake_clock):
        controller = RecordingController(capture_backend, clock=fake_clock)
        detected = []
        tracker = PresenceTracker(
            controller, listener=PresenceListener(on_rider_detected=detected.append), clock=fake_clock
        )

        tracker.update(HIT)

        assert tracker.is_present is True
        assert tracker.last_seen_at == fake_clock.now
        assert controller.state is RecordingState.RECORDING
        assert detected == [HIT]
        controller.release()

    def test_cooldown_blocks_close_starts(self):
        """Enter edges 0.4s apart start once; a third edge 1.2s after the first starts again."""
        controller = IdleController()
        tracker = PresenceTracker(controller, recording_cooldown=1.0)

        tracker.update(HIT, now=100.0)
        tracker.update(MISS, now=100.2)
        tracker.update(HIT, now=100.4)
        assert controller.starts == 1

        tracker.update(MISS, now=100.8)
        tracker.update(HIT, now=101.2)
        assert controller.starts == 2

    def test_no_start_unless_idle(self):
        controller = ManualController()
        controller.state = RecordingState.SAVING
        tracker = PresenceTracker(controller)

        tracker.update(HIT, now=10.0)

        assert controller.starts == 0
        assert tracker.last_start_attempt is None

    def test_exit_edge_notifies_without_stopping(self):
        lost = []
        controller = IdleController()
        tracker = PresenceTracker(controller, listener=PresenceListener(on_rider_lost=lambda: lost.append(True)))

        tracker.update(HIT, now=1.0)
        tracker.update(MISS, now=1.1)

        assert tracker.is_present is False
        assert lost == [True]
        assert controller.stops == 0

    def test_on_update_sees_every_result(self):
        seen = []
        tracker = PresenceTracker(IdleController(), listener=PresenceListener(on_update=seen.append))

        for result in (MISS, HIT, HIT, MISS):
            tracker.update(result, now=1.0)

        assert seen == [MISS, HIT, HIT, MISS]

    def test_listener_errors_swallowed(self):
        def broken(*args):
            raise RuntimeError("ui gone")

        controller = IdleController()
        tracker = PresenceTracker(controller, listener=PresenceListener(on_rider_detected=broken, on_update=broken))

        tracker.update(HIT, now=1.0)

        assert controller.starts == 1


class TestStopRules:
    """Tests for the duration and post-rider stop rules."""

    def test_duration_boundary_is_strict(self):
        """Stop at 8.001s but not at exactly 8.0s."""
        controller = ManualController()
        tracker = PresenceTracker(controller, recording_duration=8.0)
        tracker.update(HIT, now=100.0)
        controller.begin(100.0)

        tracker.update(HIT, now=108.0)
        assert controller.stops == 0

        tracker.update(HIT, now=108.001)
        assert controller.stops == 1

    def test_post_rider_delay_boundary_is_strict(self):
        controller = ManualController()
        tracker = PresenceTracker(controller, post_rider_delay=2.0)
        tracker.update(HIT, now=100.0)
        controller.begin(100.0)
        tracker.update(HIT, now=101.0)
        tracker.update(MISS, now=101.5)

        tracker.update(MISS, now=103.0)
        assert controller.stops == 0

        tracker.update(MISS, now=103.001)
        assert controller.stops == 1

    def test_present_rider_keeps_recording(self):
        controller = ManualController()
        tracker = PresenceTracker(controller, post_rider_delay=2.0)
        tracker.update(HIT, now=100.0)
        controller.begin(100.0)

        for t in (101.0, 102.5, 104.0, 105.5):
            tracker.update(HIT, now=t)

        assert controller.stops == 0

    def test_never_seen_measured_from_start(self):
        controller = ManualController()
        controller.begin(50.0)
        tracker = PresenceTracker(controller, post_rider_delay=2.0)

        tracker.update(MISS, now=51.0)
        assert controller.stops == 0
        tracker.update(MISS, now=52.5)
        assert controller.stops == 1

    def test_progress_reported(self):
        progress = []
        controller = ManualController()
        tracker = PresenceTracker(controller, listener=PresenceListener(on_progress=progress.append))
        tracker.update(HIT, now=10.0)
        controller.begin(10.0)

        tracker.update(HIT, now=12.5)

        assert progress == [pytest.approx(2.5)]

    def test_full_cycle_with_controller(self, capture_backend, fake_clock):
        """Rider passes, leaves, and the recording stops after the grace window."""
        controller = RecordingController(capture_backend, clock=fake_clock, saving_reset_delay=10.0)
        tracker = PresenceTracker(controller, clock=fake_clock)

        tracker.update(HIT)
        fake_clock.advance(1.0)
        tracker.update(HIT)
        fake_clock.advance(0.5)
        tracker.update(MISS)
        fake_clock.advance(2.1)
        tracker.update(MISS)

        assert capture_backend.last.stop_calls == 1
        capture_backend.last.finish(success=True)
        assert controller.state is RecordingState.SAVING
        controller.release()


class TestReset:
    """Tests for reset() and release()."""

    def test_reset_clears_presence_and_cooldown(self):
        controller = IdleController()
        tracker = PresenceTracker(controller)
        tracker.update(HIT, now=1.0)

        tracker.reset()
        tracker.update(HIT, now=1.1)

        assert controller.starts == 2

    def test_reset_resets_detector_manager(self):
        class Manager:
            resets = 0

            def reset(self):
                self.resets += 1

        manager = Manager()
        PresenceTracker(IdleController(), detector_manager=manager).reset()

        assert manager.resets == 1

    def test_release_drops_listener(self):
        seen = []
        tracker = PresenceTracker(IdleController(), listener=PresenceListener(on_update=seen.append))

        tracker.release()
        tracker.update(HIT, now=1.0)

        assert seen == []
