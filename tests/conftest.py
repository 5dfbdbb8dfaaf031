"""Shared fakes and frame builders for the SignStream tests."""
from typing import List, Optional, Sequence

import numpy as np
import pytest

from signstream.core.events import LandmarkFrame
from signstream.core.registry import CallbackRegistry
from signstream.utils.config import FilterSpec, PipelineConfig


def make_frame(timestamp: int, value: float = 0.0, points: int = 21, hands: int = 1) -> LandmarkFrame:
    """A frame whose every point is (value, value)."""
    hand = tuple((value, value) for _ in range(points))
    return LandmarkFrame(timestamp=timestamp, hands=tuple(hand for _ in range(hands)))


def make_frames(count: int, points: int = 21, start: int = 0) -> List[LandmarkFrame]:
    """Frames 0..count-1 whose coordinates equal their index."""
    return [make_frame(start + i, float(start + i), points) for i in range(count)]


class FakeClassifier:
    """SignClassifier returning a fixed probability vector and recording its inputs."""

    def __init__(self, labels: Sequence[str], probabilities: Sequence[float], error: Optional[Exception] = None):
        self.labels = list(labels)
        self.probabilities = np.asarray(probabilities, dtype=np.float32)
        self.error = error
        self.calls: List[np.ndarray] = []

    def classify(self, tensor: np.ndarray) -> np.ndarray:
        self.calls.append(tensor)
        if self.error is not None:
            raise self.error
        return self.probabilities


class FakeDetector:
    """HandDetector that replays the landmark frames it is told to return."""

    def __init__(self):
        self.callbacks = CallbackRegistry("fake_detection")
        self.error_callbacks = CallbackRegistry("fake_detection_errors")
        self.submitted = []
        self.closed = False

    def submit(self, frame) -> int:
        self.submitted.append(frame)
        return frame.timestamp

    def add_callback(self, handler, name=None):
        return self.callbacks.add(handler, name)

    def add_error_callback(self, handler, name=None):
        return self.error_callbacks.add(handler, name)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def small_config():
    """Three frames of one point each, capacity-triggered window."""
    return PipelineConfig(frames_per_prediction=3, points_per_hand=1)


@pytest.fixture
def labels():
    return ["hello", "thanks", "yes"]


@pytest.fixture
def best_of_specs():
    return (FilterSpec("best_of"),)
