"""
Protocol definitions (interfaces) for the SignStream node.

These define the contracts that adapters must implement,
enabling dependency injection and easy testing/swapping.
"""
from typing import Any, Callable, Optional, Protocol, Sequence, runtime_checkable

import numpy as np

from signstream.core.events import Frame


@runtime_checkable
class FrameSource(Protocol):
    """Interface for any frame-producing component (camera, video file, etc.)."""

    def start(self) -> bool:
        """Initialize and begin frame acquisition. Returns True on success."""
        ...

    def read_frame(self) -> Optional[np.ndarray]:
        """
        Read the next available frame.

        Returns:
            A BGR numpy array (OpenCV format), or None if no frame is available.
        """
        ...

    def stop(self) -> None:
        """Release resources and stop frame acquisition."""
        ...


@runtime_checkable
class HandDetector(Protocol):
    """Interface for a hand-landmark detection backend."""

    def submit(self, frame: Frame) -> int:
        """
        Submit a frame for detection.

        Results (HandDetection events) are delivered to the callbacks
        registered with `add_callback`, possibly on another thread.

        Returns:
            The token (frame timestamp) the result will be keyed by.
        """
        ...

    def add_callback(self, handler: Callable[[Any], None], name: Optional[str] = None) -> Any:
        """Register a HandDetection consumer. Returns a removal handle."""
        ...

    def add_error_callback(self, handler: Callable[[Any], None], name: Optional[str] = None) -> Any:
        """Register a consumer for runtime detector failures."""
        ...

    def close(self) -> None:
        """Release the underlying detector."""
        ...


@runtime_checkable
class SignClassifier(Protocol):
    """Interface for the classifier mapping a window tensor to label probabilities."""

    labels: Sequence[str]

    def classify(self, tensor: np.ndarray) -> np.ndarray:
        """
        Run the classifier on one flattened window tensor.

        Args:
            tensor: float32 array of length frames * points_per_hand * 2.

        Returns:
            Probability vector, one entry per label.
        """
        ...
