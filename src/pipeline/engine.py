"""
Pipeline engine for the rider monitor.

Reads frames from an ObservationSource and runs them, one at a time, through
the detector manager and the presence tracker, which in turn drives the
recording controller. Live sources are read on a separate thread into a
keep-only-latest slot so a slow detector drops frames instead of lagging.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, List, Optional

from detection.manager import DetectorManager
from inference.backend import PoseEstimator
from models.config import Config
from models.detection import DetectionResult
from models.frame import FrameSample
from observation import LatestFrameSlot, ObservationSource, OpenCVSource, OpenCVSourceConfig
from recording.controller import RecordingController, RecordingState
from recording.presence import PresenceTracker
from recording.video_writer import VideoFileBackend


DETECTION_DISABLED_MESSAGE = "Detection disabled"


@dataclass
class PipelineConfig:
    """
    Configuration for the pipeline engine.

    Attributes:
        keep_latest: Read live sources on a background thread and drop stale frames.
        max_consecutive_failures: Max frame read failures before stopping.
        stats_log_interval: Seconds between status log messages.
        frame_wait: Seconds the consumer waits for a frame before re-checking for shutdown.
        failure_backoff: Seconds to sleep after a failed read.
    """
    keep_latest: bool = True
    max_consecutive_failures: int = 10
    stats_log_interval: float = 60.0
    frame_wait: float = 0.5
    failure_backoff: float = 0.5


@dataclass
class PipelineStats:
    """Runtime statistics for the pipeline."""
    frames_processed: int = 0
    frames_dropped: int = 0
    recordings_started: int = 0
    consecutive_failures: int = 0
    start_time: float = field(default_factory=time.monotonic)
    last_stats_log_time: float = field(default_factory=time.monotonic)
    processing_ms: Deque[float] = field(default_factory=lambda: deque(maxlen=30))

    @property
    def avg_processing_ms(self) -> float:
        """Average detector latency over the last 30 frames."""
        if not self.processing_ms:
            return 0.0
        return sum(self.processing_ms) / len(self.processing_ms)


class RiderMonitorEngine:
    """
    Main processing engine.

    The consumer side (detection, presence update, start/stop decisions) runs
    on exactly one thread: the one that called run().

    Example:
        engine = create_engine_from_config(Config.from_dict(cfg))
        engine.run()
    """

    def __init__(
        self,
        source: ObservationSource,
        manager: DetectorManager,
        presence: PresenceTracker,
        controller: RecordingController,
        recorder: Optional[VideoFileBackend] = None,
        config: Optional[PipelineConfig] = None,
    ):
        self.source = source
        self.manager = manager
        self.presence = presence
        self.controller = controller
        self.recorder = recorder
        self.config = config or PipelineConfig()
        self.stats = PipelineStats()

        self._running = False
        self._detection_enabled = True
        self._slot: Optional[LatestFrameSlot] = None
        self._reader: Optional[threading.Thread] = None
        self._callbacks: List[Callable[[FrameSample, DetectionResult], None]] = []

        upstream = manager.on_processing_time

        def on_processing_time(ms: float) -> None:
            self.stats.processing_ms.append(ms)
            if upstream is not None:
                upstream(ms)

        manager.on_processing_time = on_processing_time

    def add_callback(self, callback: Callable[[FrameSample, DetectionResult], None]) -> None:
        """
        Add a callback to be called after each frame is processed.

        Args:
            callback: Function taking (frame, result). The frame is already closed.
        """
        self._callbacks.append(callback)

    @property
    def detection_enabled(self) -> bool:
        return self._detection_enabled

    def set_detection_enabled(self, enabled: bool) -> None:
        """Turn analysis on or off; while off, frames are closed unanalyzed and presence clears."""
        self._detection_enabled = bool(enabled)
        logging.info(f"Detection {'enabled' if enabled else 'disabled'}")

    @property
    def is_running(self) -> bool:
        return self._running

    def run(self) -> None:
        """
        Run the main processing loop until stopped or the source is exhausted.
        Resources are released on exit.
        """
        self._running = True
        self.stats = PipelineStats()

        try:
            self.source.open()
            threaded = self.config.keep_latest and self.source.is_live
            logging.info(
                f"Pipeline started: source={self.source.source_id}, "
                f"mode={'keep-latest' if threaded else 'sequential'}"
            )
            if threaded:
                self._run_latest()
            else:
                self._run_sequential()
        except KeyboardInterrupt:
            logging.info("Pipeline interrupted by user")
        except Exception as e:
            logging.exception(f"Pipeline error: {e}")
        finally:
            self._cleanup()

    def stop(self) -> None:
        """Signal the pipeline to stop after the current frame."""
        self._running = False
        if self._slot is not None:
            self._slot.close()

    def _run_sequential(self) -> None:
        while self._running:
            frame = self.source.read()
            if frame is None:
                if not self.source.is_live:
                    logging.info("Source exhausted")
                    break
                if not self._note_read_failure():
                    break
                continue
            self.stats.consecutive_failures = 0
            self.process(frame)

    def _run_latest(self) -> None:
        self._slot = LatestFrameSlot()
        self._reader = threading.Thread(target=self._read_loop, args=(self._slot,), daemon=True, name="frame-reader")
        self._reader.start()

        while self._running:
            frame = self._slot.take(timeout=self.config.frame_wait)
            if frame is None:
                if self._slot.closed:
                    break
                continue
            self.process(frame)

    def _read_loop(self, slot: LatestFrameSlot) -> None:
        try:
            while self._running and not slot.closed:
                frame = self.source.read()
                if frame is None:
                    if not self._note_read_failure():
                        break
                    continue
                self.stats.consecutive_failures = 0
                slot.put(frame)
        except Exception as e:
            logging.error(f"Frame reader error: {e}")
        finally:
            slot.close()

    def _note_read_failure(self) -> bool:
        """Count a failed read; returns False once the failure limit is reached."""
        self.stats.consecutive_failures += 1
        if self.stats.consecutive_failures >= self.config.max_consecutive_failures:
            logging.error(f"Too many consecutive failures ({self.stats.consecutive_failures}), stopping")
            return False
        logging.warning(
            f"Frame read failed ({self.stats.consecutive_failures}/{self.config.max_consecutive_failures})"
        )
        time.sleep(self.config.failure_backoff)
        return True

    def process(self, frame: FrameSample) -> Optional[DetectionResult]:
        """
        Handle one frame on the consumer thread. The frame is closed on return.
        """
        self.stats.frames_processed += 1

        if self.recorder is not None and self.controller.is_recording:
            image = frame.image if frame.image is not None else frame.gray
            self.recorder.write(image)

        if self._detection_enabled:
            result = self.manager.process_frame(frame)
        else:
            frame.close()
            result = DetectionResult.negative(DETECTION_DISABLED_MESSAGE)

        if result is not None:
            was_idle = self.controller.state is RecordingState.IDLE
            self.presence.update(result)
            if was_idle and self.controller.state is RecordingState.RECORDING:
                self.stats.recordings_started += 1

            for callback in self._callbacks:
                try:
                    callback(frame, result)
                except Exception as e:
                    logging.warning(f"Callback error: {e}")

        self._handle_periodic_tasks()
        return result

    def _handle_periodic_tasks(self) -> None:
        now = time.monotonic()
        if now - self.stats.last_stats_log_time < self.config.stats_log_interval:
            return
        if self._slot is not None:
            self.stats.frames_dropped = self._slot.dropped
        logging.info(
            f"Pipeline stats: frames={self.stats.frames_processed}, "
            f"dropped={self.stats.frames_dropped}, "
            f"avg_processing={self.stats.avg_processing_ms:.1f}ms, "
            f"recordings={self.stats.recordings_started}, "
            f"state={self.controller.state.value}"
        )
        self.stats.last_stats_log_time = now

    def _cleanup(self) -> None:
        """Clean up resources."""
        self._running = False
        if self._slot is not None:
            self._slot.close()
            self.stats.frames_dropped = self._slot.dropped
        if self._reader is not None:
            self._reader.join(timeout=2.0)
            self._reader = None

        for name, release in (
            ("recording controller", self.controller.release),
            ("presence tracker", self.presence.release),
            ("detector manager", self.manager.release),
            ("source", self.source.close),
        ):
            try:
                release()
            except Exception as e:
                logging.warning(f"Error releasing {name}: {e}")

        logging.info(
            f"Pipeline stopped: frames={self.stats.frames_processed}, "
            f"recordings={self.stats.recordings_started}"
        )


def create_pose_estimator_factory(config: Config) -> Optional[Callable[[], PoseEstimator]]:
    """Build a factory for the configured pose model, or None when no model is set."""
    pose_cfg = config.detection.pose
    if pose_cfg is None or not pose_cfg.model:
        return None

    def factory() -> PoseEstimator:
        from inference.cpu_backend import CpuPoseConfig, UltralyticsPoseEstimator

        return UltralyticsPoseEstimator(CpuPoseConfig(model=pose_cfg.model, conf_threshold=pose_cfg.conf_threshold))

    return factory


def create_engine_from_config(
    config: Config,
    source: Optional[ObservationSource] = None,
    pose_estimator_factory: Optional[Callable[[], PoseEstimator]] = None,
) -> RiderMonitorEngine:
    """
    Factory function to wire a RiderMonitorEngine from the typed config.

    Args:
        config: Full application config.
        source: Frame source; defaults to an OpenCVSource built from config.camera.
        pose_estimator_factory: Overrides the Ultralytics factory (used by tests).
    """
    if source is None:
        source = OpenCVSource(OpenCVSourceConfig.from_camera_config(config.camera, source_id="main-camera"))

    if pose_estimator_factory is None:
        pose_estimator_factory = create_pose_estimator_factory(config)

    detection = config.detection
    manager = DetectorManager(
        detector_type=detection.type,
        pose_estimator_factory=pose_estimator_factory,
        settings=detection.detector_settings(),
        pose_timeout_s=detection.pose.timeout_s if detection.pose else 2.0,
    )

    rec = config.recording
    recorder = VideoFileBackend(rec.output_dir, fps=rec.fps)
    controller = RecordingController(
        recorder,
        saving_reset_delay=rec.saving_reset_delay_s,
        error_reset_delay=rec.error_reset_delay_s,
    )
    presence = PresenceTracker(
        controller,
        recording_duration=rec.duration_s,
        post_rider_delay=rec.post_rider_delay_s,
        recording_cooldown=rec.cooldown_s,
        detector_manager=manager,
    )

    pipeline_config = PipelineConfig(
        keep_latest=config.pipeline.keep_latest,
        max_consecutive_failures=config.pipeline.max_consecutive_failures,
        stats_log_interval=config.pipeline.stats_log_interval,
    )
    return RiderMonitorEngine(source, manager, presence, controller, recorder=recorder, config=pipeline_config)
