"""
Temporal window of landmark frames with pluggable trigger and fill policies.

    add_element(frame):
        triggered = trigger.check(frames)      # state before insertion
        fill.fill(frames, frame, triggered)    # insertion and eviction
        if triggered: dispatch a copy of frames

The check-then-fill step and the snapshot are taken under one lock, then the
snapshot is dispatched outside it, so consumers never see a live list.
"""
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional, Sequence

from signstream.core.registry import CallbackRegistry
from signstream.utils import constants as C
from signstream.utils.failures import ConfigError
from signstream.utils.logger import Logger


# ─── Trigger strategies ──────────────────────────────────────────────────

class WindowTrigger(ABC):
    """Decides whether the window is ready to notify its consumers."""

    @abstractmethod
    def check(self, frames: Sequence[Any]) -> bool:
        ...


class CapacityFullTrigger(WindowTrigger):
    """Fires when the window holds exactly `capacity` elements."""

    def __init__(self, capacity: int = C.DEFAULT_FRAMES_PER_PREDICTION):
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity

    def check(self, frames: Sequence[Any]) -> bool:
        # Exact equality: a window that somehow overshoots stops triggering.
        return len(frames) == self.capacity

    def __repr__(self):
        return f"CapacityFullTrigger({self.capacity})"


class NoTrigger(WindowTrigger):
    """Never fires."""

    def check(self, frames: Sequence[Any]) -> bool:
        return False

    def __repr__(self):
        return "NoTrigger()"


# ─── Fill strategies ─────────────────────────────────────────────────────

class WindowFill(ABC):
    """Inserts a new element, evicting old ones as the policy requires."""

    @abstractmethod
    def fill(self, frames: List[Any], frame: Any, triggered: bool) -> None:
        ...


class CapacityFill(WindowFill):
    """Append, and drop the oldest element whenever the trigger fired."""

    def fill(self, frames: List[Any], frame: Any, triggered: bool) -> None:
        frames.append(frame)
        if triggered:
            del frames[0]

    def __repr__(self):
        return "CapacityFill()"


class SlidingWindowFill(WindowFill):
    """Fixed-size sliding window, independent of the trigger."""

    def __init__(self, max_size: int):
        if max_size <= 0:
            raise ValueError(f"max_size must be positive, got {max_size}")
        self.max_size = max_size

    def fill(self, frames: List[Any], frame: Any, triggered: bool) -> None:
        frames.append(frame)
        excess = len(frames) - self.max_size
        if excess > 0:
            del frames[:excess]

    def __repr__(self):
        return f"SlidingWindowFill({self.max_size})"


# ─── Window ──────────────────────────────────────────────────────────────

class TemporalWindow:
    """
    Bounded, ordered buffer of landmark frames.

    Consumers registered with `add_callback` receive a list copy of the
    contents each time the trigger fires. Elements are expected to be
    immutable (LandmarkFrame is frozen), so the list copy is a full snapshot.
    """

    def __init__(
        self,
        trigger: Optional[WindowTrigger] = None,
        filler: Optional[WindowFill] = None,
    ):
        self.trigger: WindowTrigger = trigger or CapacityFullTrigger(C.DEFAULT_FRAMES_PER_PREDICTION)
        self.filler: WindowFill = filler or CapacityFill()
        self._frames: List[Any] = []
        self._lock = threading.Lock()
        self.callbacks = CallbackRegistry("window")
        self.logger = Logger("TemporalWindow")

    def add_element(self, frame: Any) -> bool:
        """
        Add a frame, and notify consumers if the trigger fired.

        Returns:
            Whether the trigger fired for this insertion.
        """
        with self._lock:
            triggered = self.trigger.check(self._frames)
            self.filler.fill(self._frames, frame, triggered)
            snapshot = list(self._frames) if triggered else None

        if snapshot is not None:
            self.logger.debug(f"Window triggered with {len(snapshot)} frame(s)")
            self.callbacks.dispatch(snapshot)
        return triggered

    def trigger_callbacks(self) -> int:
        """Notify consumers with the current contents regardless of the trigger."""
        snapshot = self.snapshot()
        self.logger.debug(f"Manual trigger with {len(snapshot)} frame(s)")
        return self.callbacks.dispatch(snapshot)

    def snapshot(self) -> List[Any]:
        """Return a copy of the current contents, oldest first."""
        with self._lock:
            return list(self._frames)

    def clear(self) -> None:
        """Remove every buffered frame."""
        with self._lock:
            self._frames.clear()
        self.logger.debug("Window cleared")

    def add_callback(self, handler: Callable[[List[Any]], None], name: Optional[str] = None):
        return self.callbacks.add(handler, name)

    def remove_callback(self, handle) -> bool:
        return self.callbacks.remove(handle)

    def clear_callbacks(self) -> None:
        self.callbacks.clear()

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._frames)

    def __len__(self) -> int:
        return self.size


def build_window(trigger_name: str, fill_name: str, capacity: int) -> TemporalWindow:
    """Create a window from the configured policy names."""
    if trigger_name == C.TRIGGER_CAPACITY_FULL:
        trigger = CapacityFullTrigger(capacity)
    elif trigger_name == C.TRIGGER_NONE:
        trigger = NoTrigger()
    else:
        raise ConfigError(f"Unknown window trigger: {trigger_name}")

    if fill_name == C.FILL_CAPACITY:
        filler = CapacityFill()
    elif fill_name == C.FILL_SLIDING:
        filler = SlidingWindowFill(capacity)
    else:
        raise ConfigError(f"Unknown window fill: {fill_name}")

    return TemporalWindow(trigger=trigger, filler=filler)
