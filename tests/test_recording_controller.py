"""
Tests for the recording state machine.
"""

import threading
import time

import pytest

from recording.controller import RecordingController, RecordingListener, RecordingState


def _controller(backend, clock=None, **kwargs):
    kwargs.setdefault("saving_reset_delay", 0.05)
    kwargs.setdefault("error_reset_delay", 0.05)
    if clock is not None:
        kwargs["clock"] = clock
    return RecordingController(backend, **kwargs)


class TestStart:
    """Tests for start()."""

    def test_start_from_idle(self, capture_backend, fake_clock):
        controller = _controller(capture_backend, fake_clock)

        assert controller.start() is True
        assert controller.state is RecordingState.RECORDING
        assert controller.recording_started_at == fake_clock.now
        assert controller.is_recording is True
        assert len(capture_backend.captures) == 1

    def test_start_rejected_when_not_idle(self, capture_backend):
        controller = _controller(capture_backend)
        controller.start()

        assert controller.start() is False
        assert controller.state is RecordingState.RECORDING
        assert len(capture_backend.captures) == 1

    def test_backend_start_failure_goes_to_error(self, failing_capture_backend):
        finished = []
        controller = _controller(
            failing_capture_backend,
            listener=RecordingListener(on_finished=lambda *args: finished.append(args)),
            error_reset_delay=10.0,
        )

        assert controller.start() is False
        assert controller.state is RecordingState.ERROR
        assert finished[0][0] is False
        assert "camera busy" in finished[0][2]
        controller.release()

    def test_concurrent_starts_admit_one(self, capture_backend):
        """Near-simultaneous start() calls against a slow backend start exactly one capture."""
        original_start = capture_backend.start

        def slow_start(on_finished):
            time.sleep(0.05)
            return original_start(on_finished)

        capture_backend.start = slow_start
        controller = _controller(capture_backend)
        barrier = threading.Barrier(8)
        results = []

        def attempt():
            barrier.wait()
            results.append(controller.start())

        threads = [threading.Thread(target=attempt) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=2.0)

        assert sorted(results) == [False] * 7 + [True]
        assert len(capture_backend.captures) == 1
        assert controller.state is RecordingState.RECORDING
        controller.release()

    def test_elapsed(self, capture_backend, fake_clock):
        controller = _controller(capture_backend, fake_clock)
        assert controller.elapsed() == 0.0

        controller.start()
        fake_clock.advance(3.0)

        assert controller.elapsed() == pytest.approx(3.0)


class TestFinish:
    """Tests for terminal events and auto-reset."""

    def test_success_saves_then_idles(self, capture_backend, waiter):
        states = []
        finished = []
        controller = _controller(
            capture_backend,
            listener=RecordingListener(
                on_state_changed=states.append,
                on_finished=lambda *args: finished.append(args),
            ),
        )
        controller.start()
        controller.stop()
        capture_backend.last.finish(success=True, uri="/tmp/ride.mp4")

        assert controller.state is RecordingState.SAVING
        assert controller.recording_started_at is None
        assert finished == [(True, "/tmp/ride.mp4", None)]
        assert waiter(lambda: controller.state is RecordingState.IDLE)
        assert states == [RecordingState.RECORDING, RecordingState.SAVING, RecordingState.IDLE]

    def test_failure_errors_then_idles(self, capture_backend, waiter):
        finished = []
        controller = _controller(
            capture_backend, listener=RecordingListener(on_finished=lambda *args: finished.append(args))
        )
        controller.start()
        capture_backend.last.finish(success=False, error="disk full")

        assert controller.state is RecordingState.ERROR
        assert finished == [(False, None, "disk full")]
        assert waiter(lambda: controller.state is RecordingState.IDLE)
        assert controller.start() is True

    def test_second_terminal_event_ignored(self, capture_backend):
        finished = []
        controller = _controller(
            capture_backend,
            listener=RecordingListener(on_finished=lambda *args: finished.append(args)),
            saving_reset_delay=10.0,
        )
        controller.start()
        capture_backend.last.finish(success=True)
        capture_backend.last.finish(success=False, error="late")

        assert controller.state is RecordingState.SAVING
        assert len(finished) == 1
        controller.release()

    def test_event_after_release_ignored(self, capture_backend):
        controller = _controller(capture_backend)
        controller.start()
        capture = capture_backend.last

        controller.release()
        capture.finish(success=False, error="stale")

        assert controller.state is RecordingState.IDLE
        assert capture.stop_calls == 1

    def test_listener_errors_swallowed(self, capture_backend):
        def broken(*args):
            raise RuntimeError("listener bug")

        controller = _controller(
            capture_backend,
            listener=RecordingListener(on_state_changed=broken, on_finished=broken),
            saving_reset_delay=10.0,
        )

        assert controller.start() is True
        capture_backend.last.finish(success=True)
        assert controller.state is RecordingState.SAVING
        controller.release()


class TestStopAndRelease:
    """Tests for stop() and release()."""

    def test_stop_is_idempotent(self, capture_backend):
        controller = _controller(capture_backend)
        controller.start()

        controller.stop()
        controller.stop()

        assert capture_backend.last.stop_calls == 1

    def test_stop_without_capture_is_noop(self, capture_backend):
        controller = _controller(capture_backend)

        controller.stop()

        assert controller.state is RecordingState.IDLE
        assert capture_backend.captures == []

    def test_release_cancels_pending_reset(self, capture_backend, waiter):
        controller = _controller(capture_backend, saving_reset_delay=0.05)
        controller.start()
        capture_backend.last.finish(success=True)

        controller.release()
        assert controller.state is RecordingState.IDLE
        controller.start()

        # The cancelled SAVING reset must not fire into the new recording
        assert not waiter(lambda: controller.state is not RecordingState.RECORDING, timeout=0.2)
        controller.release()
