"""
Recognition pipeline: detector results in, recognized signs out.

    HandDetection → TemporalWindow.add_element → (triggered) WindowSnapshot
        → [work queue] → assemble tensor → classify → filter chain → SignRecognized

Each snapshot is tagged with the generation current when the window fired.
`poll()` and `pause()` bump the generation, so a classification that was
already in flight when the session paused is dropped instead of delivered.
"""
import threading
from queue import Full, Queue
from typing import Any, Callable, List, Optional

from signstream.core.assembler import WindowTensorAssembler
from signstream.core.events import (
    HandDetection, LandmarkFrame, PipelineError, SignRecognized, WindowSnapshot,
)
from signstream.core.filters import FilterChain, FilterUnit, build_filter_chain
from signstream.core.protocols import HandDetector, SignClassifier
from signstream.core.registry import CallbackRegistry
from signstream.core.window import TemporalWindow, build_window
from signstream.utils.config import PipelineConfig
from signstream.utils.failures import ClassifierError, FailureManager
from signstream.utils.logger import Logger


class RecognitionPipeline:
    """
    Owns the window, assembler and filter chain for one classifier instance.

    Without a work queue, classification runs inline on the thread that
    delivered the triggering detection. With one, snapshots are queued for a
    ClassificationStage and `process_window` runs there.
    """

    def __init__(
        self,
        config: PipelineConfig,
        classifier: SignClassifier,
        window: Optional[TemporalWindow] = None,
        filter_chain: Optional[FilterChain] = None,
        work_queue: Optional[Queue] = None,
        failures: Optional[FailureManager] = None,
    ):
        """
        Args:
            config: Frozen pipeline settings.
            classifier: Any object implementing the SignClassifier protocol.
            window: Defaults to the configured trigger/fill policy.
            filter_chain: Defaults to the configured filters.
            work_queue: Optional bounded queue feeding a ClassificationStage.
            failures: Shared failure tracker.
        """
        self.config = config
        self.classifier = classifier
        self.window = window or build_window(
            config.window_trigger, config.window_fill, config.window_capacity
        )
        self.assembler = WindowTensorAssembler(
            required_frames=config.frames_per_prediction,
            points_per_hand=config.points_per_hand,
            interpolate=config.interpolate,
        )
        self.filter_chain = filter_chain or build_filter_chain(config.filters)
        self.work_queue = work_queue
        self.failures = failures or FailureManager()
        self.logger = Logger("RecognitionPipeline")

        self.signs = CallbackRegistry("signs")
        self.errors = CallbackRegistry("errors")

        # Reentrant: sign handlers may call pause() from inside an inline dispatch
        self._state_lock = threading.RLock()
        self._classify_lock = threading.Lock()
        self._generation = 0
        self._active = False

        self.window.add_callback(self._on_window_ready, name="classification")

    # ── Session control ─────────────────────────────────────────────

    def poll(self) -> None:
        """Start accepting detections with an empty window."""
        with self._state_lock:
            self._active = True
            self._generation += 1
            self.window.clear()
        self.logger.info(f"Polling (generation {self._generation})")

    def pause(self) -> None:
        """Stop accepting detections and drop buffered frames."""
        with self._state_lock:
            self._active = False
            self._generation += 1
            self.window.clear()
        self.logger.info(f"Paused (generation {self._generation})")

    @property
    def active(self) -> bool:
        with self._state_lock:
            return self._active

    @property
    def generation(self) -> int:
        with self._state_lock:
            return self._generation

    @property
    def interpolate(self) -> bool:
        return self.assembler.interpolate

    @interpolate.setter
    def interpolate(self, value: bool) -> None:
        self.assembler.interpolate = bool(value)

    # ── Wiring ──────────────────────────────────────────────────────

    def attach_detector(self, detector: HandDetector) -> None:
        """Feed the detector's results into the window and its failures into the error channel."""
        detector.add_callback(self.on_detection, name="window_fill")
        detector.add_error_callback(
            lambda error: self.report_error("detector", error), name="pipeline_errors"
        )

    def add_sign_callback(self, handler: Callable[[SignRecognized], None], name: Optional[str] = None):
        return self.signs.add(handler, name)

    def remove_sign_callback(self, handle) -> bool:
        return self.signs.remove(handle)

    def add_error_callback(self, handler: Callable[[PipelineError], None], name: Optional[str] = None):
        return self.errors.add(handler, name)

    def remove_error_callback(self, handle) -> bool:
        return self.errors.remove(handle)

    # ── Detector side ───────────────────────────────────────────────

    def on_detection(self, detection: HandDetection) -> bool:
        """
        Buffer a detector result. Frames without a hand are not buffered.

        Returns:
            Whether the window triggered.
        """
        return self.add_landmarks(detection.landmarks)

    def add_landmarks(self, landmarks: LandmarkFrame) -> bool:
        with self._state_lock:
            if not self._active or not landmarks.has_hand:
                return False
            return self.window.add_element(landmarks)

    def flush(self) -> int:
        """Hand the current window to classification now, full or not."""
        with self._state_lock:
            if not self._active:
                return 0
            return self.window.trigger_callbacks()

    def _on_window_ready(self, frames: List[LandmarkFrame]) -> None:
        snapshot = WindowSnapshot(frames=tuple(frames), generation=self.generation)

        if self.work_queue is None:
            self.process_window(snapshot)
            return

        try:
            self.work_queue.put_nowait(snapshot)
        except Full:
            self.logger.warning("Classification queue full, dropping window")

    # ── Classifier side ─────────────────────────────────────────────

    def process_window(self, snapshot: WindowSnapshot) -> Optional[SignRecognized]:
        """
        Assemble, classify and filter one window snapshot.

        Returns the dispatched event, or None when nothing was dispatched
        (stale generation, no tensor, classifier failure, or every label
        filtered out).
        """
        if self._is_stale(snapshot):
            return None

        tensor = self.assembler.assemble(snapshot.frames)
        if tensor is None:
            return None

        try:
            with self._classify_lock:
                probabilities = self.classifier.classify(tensor)
        except Exception as e:
            error = e if isinstance(e, ClassifierError) else ClassifierError(f"Classification failed: {e}")
            self.report_error("classifier", error, context=snapshot)
            return None

        decision = self.filter_chain.decide(FilterUnit.of(self.classifier.labels, probabilities))
        if decision is None:
            self.logger.debug("All labels filtered out")
            return None

        label, probability = decision
        event = SignRecognized(label=label, probability=probability, generation=snapshot.generation)
        self.logger.debug(f"Recognized '{label}' ({probability:.2f})")

        # pause()/poll() cannot interleave between the generation check and delivery
        with self._state_lock:
            if self._is_stale(snapshot):
                return None
            self.signs.dispatch(event)
        return event

    def _is_stale(self, snapshot: WindowSnapshot) -> bool:
        current = self.generation
        if snapshot.generation != current:
            self.logger.debug(
                f"Discarding window from generation {snapshot.generation} (current {current})"
            )
            return True
        return False

    # ── Errors ──────────────────────────────────────────────────────

    def report_error(self, source: str, error: Exception, context: Any = None) -> None:
        """Record a runtime failure and forward it to error consumers. The pipeline keeps running."""
        self.failures.record_failure(error)
        self.errors.dispatch(PipelineError(source=source, error=error, context=context))
