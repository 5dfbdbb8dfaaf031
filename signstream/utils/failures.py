"""
Structured error handling and failure tracking for the SignStream node.
"""
import threading
import time
from collections import deque
from typing import Deque, Dict, List, Optional

from signstream.utils.logger import Logger


class SignStreamError(Exception):
    """Base class for all SignStream exceptions."""
    def __init__(self, message: str, critical: bool = False):
        super().__init__(message)
        self.message = message
        self.critical = critical
        self.timestamp = time.time()


class ConfigError(SignStreamError):
    """Exception raised for configuration-related failures."""
    pass


class ModelLoadError(SignStreamError):
    """A model asset or vocabulary could not be loaded at construction."""
    def __init__(self, message: str, critical: bool = True):
        super().__init__(message, critical=critical)


class DetectorError(SignStreamError):
    """Exception raised when the hand-landmark detector fails on a frame."""
    pass


class ClassifierError(SignStreamError):
    """Exception raised when the sign classifier fails on a tensor."""
    pass


class FilterInvariantError(SignStreamError, ValueError):
    """A filter received labels and probabilities of different lengths."""
    def __init__(self, message: str = "Received invalid label and probability pair."):
        super().__init__(message, critical=True)


class FailureManager:
    """
    Counts runtime failures per exception type over a sliding time window.

    Detector and classifier failures do not stop the pipeline; this is where
    they accumulate so repeated failures are surfaced in the log.
    """

    def __init__(self, settings: Optional[dict] = None):
        """
        Args:
            settings: The 'failures' config section: 'threshold', 'window_seconds', 'max_history'
        """
        self.logger = Logger("FailureManager")

        settings = settings or {}
        self.threshold = settings.get('threshold', 5)
        self.window_seconds = settings.get('window_seconds', 300)

        self._timestamps: Dict[str, List[float]] = {}
        self._history: Deque[SignStreamError] = deque(maxlen=settings.get('max_history', 100))
        self._lock = threading.Lock()

    def _recent(self, error_type: str, now: float) -> List[float]:
        cutoff = now - self.window_seconds
        recent = [t for t in self._timestamps.get(error_type, ()) if t > cutoff]
        self._timestamps[error_type] = recent
        return recent

    def record_failure(self, error: Exception) -> bool:
        """
        Record one failure. Thread-safe.

        Returns:
            Whether this error type is now at or above the threshold.
        """
        error_type = type(error).__name__
        now = time.time()

        with self._lock:
            recent = self._recent(error_type, now)
            recent.append(now)
            if isinstance(error, SignStreamError):
                self._history.append(error)
            exceeded = len(recent) >= self.threshold

        if not isinstance(error, SignStreamError):
            self.logger.error(f"Unexpected failure: {error_type} - {error}")
        elif error.critical:
            self.logger.error(f"CRITICAL: {error_type} - {error.message}")
        else:
            self.logger.warning(f"{error_type} - {error.message}")

        if exceeded:
            self.logger.warning(
                f"'{error_type}' occurred {len(recent)} time(s) in the last {self.window_seconds}s"
            )
        return exceeded

    def is_threshold_exceeded(self, error_type: str) -> bool:
        with self._lock:
            return len(self._recent(error_type, time.time())) >= self.threshold

    def get_recent_history(self, count: int = 10) -> List[SignStreamError]:
        """The last `count` recorded SignStream errors, oldest first."""
        with self._lock:
            return list(self._history)[-count:]

    def clear(self):
        with self._lock:
            self._timestamps.clear()
            self._history.clear()
        self.logger.info("Failure history cleared")
