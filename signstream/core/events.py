"""
Typed messages for the SignStream pipeline.

Pipeline messages flow through queues between stages; the remaining events
are dispatched to consumers through callback registries.
"""
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence, Tuple
import time

import numpy as np

Point = Tuple[float, float]
Hand = Tuple[Point, ...]


# ─── Pipeline Messages ───────────────────────────────────────────────────

@dataclass(frozen=True)
class Frame:
    """A captured image with its capture timestamp in milliseconds."""
    image: np.ndarray
    timestamp: int
    source: str = "unknown"  # "camera" or "video"


@dataclass(frozen=True)
class LandmarkFrame:
    """
    Hand landmarks detected in one frame.

    `hands` holds up to max_hands hands, each an ordered tuple of normalized
    (x, y) points. Zero hands means the detector found nothing.
    """
    timestamp: int
    hands: Tuple[Hand, ...] = ()

    @classmethod
    def from_points(cls, timestamp: int, hands: Sequence[Sequence[Sequence[float]]]) -> "LandmarkFrame":
        """Build a frame from nested sequences (or arrays) of (x, y[, z]) points."""
        return cls(
            timestamp=timestamp,
            hands=tuple(
                tuple((float(p[0]), float(p[1])) for p in hand)
                for hand in hands
            ),
        )

    @property
    def has_hand(self) -> bool:
        return len(self.hands) > 0

    def first_hand_points(self) -> int:
        """Number of points in the first hand, 0 when no hand was detected."""
        return len(self.hands[0]) if self.hands else 0


@dataclass(frozen=True)
class HandDetection:
    """A detector result paired with the image it was computed from."""
    landmarks: LandmarkFrame
    image: Optional[np.ndarray] = None


@dataclass(frozen=True)
class WindowSnapshot:
    """A copy of the window contents, tagged with the pipeline generation."""
    frames: Tuple[LandmarkFrame, ...]
    generation: int


# ─── Consumer Events ─────────────────────────────────────────────────────

@dataclass
class SignRecognized:
    """Dispatched when the filter chain settles on a label."""
    label: str
    probability: float
    generation: int = 0
    timestamp: float = field(default_factory=time.time)


@dataclass
class PipelineError:
    """Dispatched when the detector or classifier fails at runtime."""
    source: str                 # "detector" or "classifier"
    error: Exception
    timestamp: float = field(default_factory=time.time)
    context: Any = None
