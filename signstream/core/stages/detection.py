"""
Detection Stage: pulls frames from the frame queue and submits them to the
hand-landmark detector.

Runs in its own thread so detection never blocks capture timing. In
live-stream mode the detector answers on its own result thread; in video and
image mode results are delivered synchronously on this one.
"""
from queue import Queue, Empty
from threading import Thread, Event
from typing import Callable

from signstream.core.events import Frame
from signstream.core.protocols import HandDetector
from signstream.utils.logger import Logger


class DetectionStage(Thread):
    """
    Pipeline Stage 1: Hand-landmark detection.

    Consumes Frame messages and hands them to the detector while the
    session is polling; frames arriving while paused are discarded.
    """

    def __init__(
        self,
        in_queue: Queue,
        detector: HandDetector,
        stop_event: Event,
        is_active: Callable[[], bool] = lambda: True,
    ):
        """
        Args:
            in_queue: Queue of Frame messages from CaptureStage.
            detector: Any object implementing the HandDetector protocol.
            stop_event: Shared threading.Event for shutdown.
            is_active: Returns False while the pipeline is paused.
        """
        super().__init__(name="DetectionStage", daemon=True)
        self.in_queue = in_queue
        self.detector = detector
        self.stop_event = stop_event
        self.is_active = is_active
        self.submitted = 0
        self.failed = 0
        self.logger = Logger("DetectionStage")

    def run(self) -> None:
        """Main detection loop. Blocks on the input queue and submits each frame."""
        self.logger.info("Detection stage running")

        while not self.stop_event.is_set():
            # Block with timeout so we can check stop_event periodically
            try:
                frame_msg: Frame = self.in_queue.get(timeout=0.5)
            except Empty:
                continue

            if not self.is_active():
                continue

            try:
                self.detector.submit(frame_msg)
            except Exception as e:
                self.failed += 1
                self.logger.error(f"Detector rejected frame {frame_msg.timestamp}: {e}")
                continue
            self.submitted += 1

        self.logger.info(f"Detection stage stopped ({self.submitted} frame(s) submitted, {self.failed} failed)")
