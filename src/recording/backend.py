"""
Capture backend interface.

A backend turns a start request into an ActiveCapture. Finalizing is
asynchronous: stop() returns immediately and the backend later reports exactly
one terminal event through the on_finished callback given to start().
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Optional


# on_finished(success, uri, error_message)
FinishedCallback = Callable[[bool, Optional[str], Optional[str]], None]


class ActiveCapture(ABC):
    """Handle to a capture in progress."""

    @abstractmethod
    def stop(self) -> None:
        """Request finalization. Safe to call more than once."""
        pass


class CaptureBackend(ABC):
    """Abstract interface for recording backends."""

    @abstractmethod
    def start(self, on_finished: FinishedCallback) -> ActiveCapture:
        """
        Begin a capture.

        Raises:
            RuntimeError: If the capture cannot be started.
        """
        pass
