"""
Window → tensor conversion.

The classifier expects `frames * points_per_hand * 2` floats laid out as
(frame, point, {x, y}), taken from the first detected hand of each frame.

    complete path:  k >= frames            → last `frames` frames
    padded path:    interpolate, 0 < k < frames
                                           → all k frames, then the middle
                                             frame (k // 2) repeated frames - k times
    otherwise:      no tensor this cycle

Every consumed frame must carry a first hand with exactly `points_per_hand`
points. If one does not, no tensor is produced (None); this is not an error.
"""
from abc import ABC, abstractmethod
from typing import Optional, Sequence

import numpy as np

from signstream.core.events import LandmarkFrame
from signstream.utils import constants as C
from signstream.utils.logger import Logger


def frames_have_landmarks(frames: Sequence[LandmarkFrame], points_per_hand: int) -> bool:
    """True if every frame has a first hand with exactly `points_per_hand` points."""
    return all(frame.first_hand_points() == points_per_hand for frame in frames)


def first_hand_block(frames: Sequence[LandmarkFrame]) -> np.ndarray:
    """Stack the first hand of each frame into a (len(frames), points, 2) float32 array."""
    return np.asarray([frame.hands[0] for frame in frames], dtype=np.float32)


class TensorAssembler(ABC):
    """Converts a list of landmark frames into a flat classifier input."""

    def __init__(
        self,
        required_frames: int = C.DEFAULT_FRAMES_PER_PREDICTION,
        points_per_hand: int = C.DEFAULT_POINTS_PER_HAND,
    ):
        self.required_frames = required_frames
        self.points_per_hand = points_per_hand

    @property
    def tensor_length(self) -> int:
        return self.required_frames * self.points_per_hand * C.COORDS_PER_POINT

    @abstractmethod
    def create_tensor(self, frames: Sequence[LandmarkFrame]) -> Optional[np.ndarray]:
        """Return the flattened tensor, or None if the frames cannot produce one."""
        ...


class PaddedTensorAssembler(TensorAssembler):
    """Fills a short window up to `required_frames` by repeating its middle frame."""

    def create_tensor(self, frames: Sequence[LandmarkFrame]) -> Optional[np.ndarray]:
        k = len(frames)
        if k == 0 or k > self.required_frames:
            return None
        if not frames_have_landmarks(frames, self.points_per_hand):
            return None

        block = first_hand_block(frames)
        pad = self.required_frames - k
        if pad:
            middle = block[k // 2]
            block = np.concatenate([block, np.repeat(middle[np.newaxis], pad, axis=0)])
        return block.reshape(-1)


class CompleteTensorAssembler(TensorAssembler):
    """Uses the most recent `required_frames` frames and drops older ones."""

    def create_tensor(self, frames: Sequence[LandmarkFrame]) -> Optional[np.ndarray]:
        if len(frames) < self.required_frames:
            return None
        recent = list(frames)[len(frames) - self.required_frames:]
        if not frames_have_landmarks(recent, self.points_per_hand):
            return None
        return first_hand_block(recent).reshape(-1)


class WindowTensorAssembler:
    """Chooses the padded or complete path for a window snapshot."""

    def __init__(
        self,
        required_frames: int = C.DEFAULT_FRAMES_PER_PREDICTION,
        points_per_hand: int = C.DEFAULT_POINTS_PER_HAND,
        interpolate: bool = False,
    ):
        self.interpolate = interpolate
        self.padded = PaddedTensorAssembler(required_frames, points_per_hand)
        self.complete = CompleteTensorAssembler(required_frames, points_per_hand)
        self.logger = Logger("TensorAssembler")

    @property
    def required_frames(self) -> int:
        return self.complete.required_frames

    @property
    def tensor_length(self) -> int:
        return self.complete.tensor_length

    def assemble(self, frames: Sequence[LandmarkFrame]) -> Optional[np.ndarray]:
        k = len(frames)
        if k >= self.required_frames:
            tensor = self.complete.create_tensor(frames)
        elif self.interpolate and k > 0:
            tensor = self.padded.create_tensor(frames)
        else:
            self.logger.debug(f"Not enough frames for a tensor ({k}/{self.required_frames})")
            return None

        if tensor is None:
            self.logger.debug("Window has a frame without a full hand; skipping cycle")
        return tensor
