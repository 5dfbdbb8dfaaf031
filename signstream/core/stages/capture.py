"""
Capture Stage: reads frames from a FrameSource and feeds the detection queue.

Every frame is stamped with a strictly increasing millisecond timestamp, which
the live-stream hand landmarker requires. The queue is bounded and written
with put_nowait(), so frames captured while detection is busy are dropped.
"""
import time
from queue import Queue, Full
from threading import Thread, Event

import numpy as np

from signstream.core.events import Frame
from signstream.core.protocols import FrameSource
from signstream.utils.logger import Logger

# Pause before asking a camera for another frame after an empty read
CAMERA_RETRY_DELAY = 0.1


class MonotonicClock:
    """Millisecond timestamps that strictly increase, as the live-stream detector requires."""

    def __init__(self):
        self._last = -1

    def now_ms(self) -> int:
        ts = int(time.monotonic() * 1000)
        if ts <= self._last:
            ts = self._last + 1
        self._last = ts
        return ts


class CaptureStage(Thread):
    """
    Pipeline Stage 0: Frame acquisition.

    `dropped` counts frames discarded because the detection queue was full,
    `loops` counts how many times a video source was restarted.
    """

    def __init__(
        self,
        source: FrameSource,
        out_queue: Queue,
        stop_event: Event,
        fps: int = 30,
        loop_video: bool = True,
        source_type: str = "unknown",
    ):
        """
        Args:
            source: Any object implementing the FrameSource protocol.
            out_queue: Bounded queue of Frame messages read by DetectionStage.
            stop_event: Shared shutdown signal. Set here if the source cannot start.
            fps: Upper bound on the capture rate.
            loop_video: Restart a video source when it reaches the end.
            source_type: "camera" or "video", copied onto every Frame.
        """
        super().__init__(name="CaptureStage", daemon=True)
        self.source = source
        self.out_queue = out_queue
        self.stop_event = stop_event
        self.frame_interval = 1.0 / max(fps, 1)
        self.loop_video = loop_video
        self.source_type = source_type
        self.clock = MonotonicClock()
        self.dropped = 0
        self.loops = 0
        self.logger = Logger("CaptureStage")

    def run(self) -> None:
        if not self.source.start():
            self.logger.error("Frame source failed to start")
            self.stop_event.set()
            return

        self.logger.info(
            f"Capture stage running ({self.source_type}, {1.0 / self.frame_interval:.0f} FPS cap)"
        )

        while not self.stop_event.is_set():
            started = time.monotonic()
            image = self.source.read_frame()

            if image is None:
                if not self._on_source_exhausted():
                    break
                continue

            self._publish(image)
            self._pace(started)

        self.source.stop()
        self.logger.info(
            f"Capture stage stopped ({self.dropped} frame(s) dropped, {self.loops} video loop(s))"
        )

    def _on_source_exhausted(self) -> bool:
        """React to an empty read. Returns False when capture should end."""
        if self.source_type != "video":
            time.sleep(CAMERA_RETRY_DELAY)
            return True

        if not self.loop_video:
            self.logger.info("Video playback finished")
            return False

        self.source.stop()
        if not self.source.start():
            self.logger.error("Failed to restart video source")
            return False
        self.loops += 1
        self.logger.debug(f"Video restarted (loop {self.loops})")
        return True

    def _publish(self, image: np.ndarray) -> None:
        frame = Frame(image=image, timestamp=self.clock.now_ms(), source=self.source_type)
        try:
            self.out_queue.put_nowait(frame)
        except Full:
            self.dropped += 1

    def _pace(self, started: float) -> None:
        remaining = self.frame_interval - (time.monotonic() - started)
        if remaining > 0:
            time.sleep(remaining)
