"""
Classification Stage: consumes window snapshots and runs them through the
recognition pipeline (assemble → classify → filter → dispatch).

A single thread, so the classifier is never invoked concurrently.
"""
from queue import Queue, Empty
from threading import Thread, Event

from signstream.core.events import WindowSnapshot
from signstream.core.pipeline import RecognitionPipeline
from signstream.utils.failures import FilterInvariantError
from signstream.utils.logger import Logger


class ClassificationStage(Thread):
    """
    Pipeline Stage 2: Classification and decision.

    A FilterInvariantError means a label/probability mismatch upstream (a
    vocabulary that does not match the model). It is not retried: the stage
    logs it, signals shutdown and exits.
    """

    def __init__(self, in_queue: Queue, pipeline: RecognitionPipeline, stop_event: Event):
        """
        Args:
            in_queue: Queue of WindowSnapshot messages filled by the pipeline.
            pipeline: The pipeline whose process_window does the work.
            stop_event: Shared threading.Event for shutdown.
        """
        super().__init__(name="ClassificationStage", daemon=True)
        self.in_queue = in_queue
        self.pipeline = pipeline
        self.stop_event = stop_event
        self.error = None
        self.logger = Logger("ClassificationStage")

    def run(self) -> None:
        self.logger.info("Classification stage running")

        while not self.stop_event.is_set():
            try:
                snapshot: WindowSnapshot = self.in_queue.get(timeout=0.5)
            except Empty:
                continue

            try:
                self.pipeline.process_window(snapshot)
            except FilterInvariantError as e:
                self.error = e
                self.logger.critical(f"Filter invariant violated, stopping: {e}")
                self.stop_event.set()
                break

        self.logger.info("Classification stage stopped")
