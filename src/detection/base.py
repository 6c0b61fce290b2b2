"""
Rider detector interface.

Every detection strategy (frame differencing, sparse optical flow, pose model,
hybrid) implements the same contract so the DetectorManager can swap them at
runtime without knowing which one is live.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional

from models.detection import DetectionResult
from models.frame import FrameSample
from models.options import ConfigOption
from models.overlay import Overlay, OverlaySink


DISABLED_MESSAGE = "Detector disabled"


class RiderDetector(ABC):
    """
    Base class for rider detectors.

    Subclasses implement _detect() and describe their tunables in
    get_config_options(). configure() is implemented here: values are coerced
    and clamped against the option schema and then handed to _apply_option().

    Detectors are not thread-safe; callers serialize process() calls.
    Detectors never close the frame they are given.
    """

    display_name: str = "Rider Detector"
    description: str = ""

    def __init__(self, overlay_sink: Optional[OverlaySink] = None):
        self.overlay_sink = overlay_sink
        self._enabled = True

    def process(self, frame: FrameSample) -> DetectionResult:
        """Analyze one frame. A disabled detector answers without touching state."""
        if not self._enabled:
            return DetectionResult.negative(DISABLED_MESSAGE)
        return self._detect(frame)

    @abstractmethod
    def _detect(self, frame: FrameSample) -> DetectionResult:
        raise NotImplementedError

    @abstractmethod
    def get_config_options(self) -> Dict[str, ConfigOption]:
        """Return the tunable options keyed by option key."""
        raise NotImplementedError

    def configure(self, settings: Mapping[str, Any]) -> None:
        """
        Apply a partial settings map.

        Unknown keys are ignored. Out-of-range numbers are clamped. Values that
        cannot be coerced are logged and skipped; other keys still apply.
        """
        options = self.get_config_options()
        for key, raw in settings.items():
            option = options.get(key)
            if option is None:
                continue
            try:
                value = option.coerce(raw)
            except ValueError as e:
                logging.warning(f"{self.display_name}: ignoring setting {key}={raw!r}: {e}")
                continue
            self._apply_option(key, value)

    @abstractmethod
    def _apply_option(self, key: str, value: Any) -> None:
        raise NotImplementedError

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = bool(enabled)

    def reset(self) -> None:
        """Drop cross-frame state."""

    def release(self) -> None:
        """Free resources. The detector must not be used afterwards."""
        self.reset()

    def _emit_overlay(self, overlay: Overlay) -> None:
        if self.overlay_sink is None:
            return
        try:
            self.overlay_sink(overlay)
        except Exception as e:
            logging.warning(f"Overlay sink failed: {e}")
