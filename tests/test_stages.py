"""Tests for the threaded pipeline stages."""
import time
from queue import Queue
from threading import Event

import numpy as np

from signstream.core.events import Frame, WindowSnapshot
from signstream.core.pipeline import RecognitionPipeline
from signstream.core.stages import CaptureStage, ClassificationStage, DetectionStage
from signstream.core.stages.capture import MonotonicClock

from conftest import FakeClassifier, FakeDetector, make_frames


class ListSource:
    """FrameSource replaying a fixed list of images."""

    def __init__(self, images, start_ok=True):
        self.images = list(images)
        self.start_ok = start_ok
        self.starts = 0
        self.stopped = False

    def start(self):
        self.starts += 1
        self._pending = list(self.images)
        return self.start_ok

    def read_frame(self):
        return self._pending.pop(0) if self._pending else None

    def stop(self):
        self.stopped = True


def test_monotonic_clock_strictly_increases():
    clock = MonotonicClock()
    stamps = [clock.now_ms() for _ in range(50)]
    assert all(b > a for a, b in zip(stamps, stamps[1:]))


class TestCaptureStage:
    def test_pushes_timestamped_frames_and_finishes(self):
        images = [np.full((2, 2, 3), i, dtype=np.uint8) for i in range(3)]
        source = ListSource(images)
        out = Queue(maxsize=10)
        stage = CaptureStage(source, out, Event(), fps=1000, loop_video=False, source_type="video")

        stage.run()

        frames = [out.get_nowait() for _ in range(out.qsize())]
        assert [int(f.image[0, 0, 0]) for f in frames] == [0, 1, 2]
        assert all(b.timestamp > a.timestamp for a, b in zip(frames, frames[1:]))
        assert source.stopped

    def test_full_queue_drops_frames(self):
        source = ListSource([np.zeros((1, 1, 3), dtype=np.uint8)] * 5)
        out = Queue(maxsize=2)
        stage = CaptureStage(source, out, Event(), fps=1000, loop_video=False, source_type="video")

        stage.run()
        assert out.qsize() == 2
        assert stage.dropped == 3

    def test_failed_start_signals_shutdown(self):
        stop = Event()
        stage = CaptureStage(ListSource([], start_ok=False), Queue(), stop, source_type="camera")
        stage.run()
        assert stop.is_set()


class TestDetectionStage:
    def test_submits_frames_while_active(self):
        frames = Queue()
        detector = FakeDetector()
        stop = Event()
        stage = DetectionStage(frames, detector, stop)
        stage.start()

        for ts in range(3):
            frames.put(Frame(image=np.zeros((1, 1, 3)), timestamp=ts))
        while not frames.empty():
            time.sleep(0.01)
        stop.set()
        stage.join(timeout=2.0)

        assert [f.timestamp for f in detector.submitted] == [0, 1, 2]

    def test_skips_frames_while_paused(self):
        frames = Queue()
        detector = FakeDetector()
        stop = Event()
        stage = DetectionStage(frames, detector, stop, is_active=lambda: False)
        stage.start()

        frames.put(Frame(image=np.zeros((1, 1, 3)), timestamp=0))
        while not frames.empty():
            time.sleep(0.01)
        stop.set()
        stage.join(timeout=2.0)

        assert detector.submitted == []


class TestClassificationStage:
    def test_processes_queued_windows(self, small_config, labels):
        pipeline = RecognitionPipeline(small_config, FakeClassifier(labels, [0.1, 0.7, 0.2]))
        pipeline.poll()
        signs = []
        stop = Event()
        pipeline.add_sign_callback(lambda event: (signs.append(event), stop.set()))

        work = Queue()
        work.put(WindowSnapshot(frames=tuple(make_frames(3, points=1)), generation=pipeline.generation))
        stage = ClassificationStage(work, pipeline, stop)
        stage.start()
        stage.join(timeout=5.0)

        assert [s.label for s in signs] == ["thanks"]
        assert stage.error is None

    def test_filter_invariant_stops_the_node(self, small_config):
        pipeline = RecognitionPipeline(small_config, FakeClassifier(["a"], [0.4, 0.6]))
        pipeline.poll()
        stop = Event()

        work = Queue()
        work.put(WindowSnapshot(frames=tuple(make_frames(3, points=1)), generation=pipeline.generation))
        stage = ClassificationStage(work, pipeline, stop)
        stage.start()
        stage.join(timeout=5.0)

        assert stop.is_set()
        assert stage.error is not None


class RaisingDetector(FakeDetector):
    def submit(self, frame):
        if frame.timestamp == 0:
            raise TypeError("unsupported frame")
        return super().submit(frame)


def test_detection_stage_continues_after_submit_raises():
    frames = Queue()
    detector = RaisingDetector()
    stop = Event()
    stage = DetectionStage(frames, detector, stop)
    stage.start()

    for ts in range(3):
        frames.put(Frame(image=np.zeros((1, 1, 3)), timestamp=ts))
    while not frames.empty():
        time.sleep(0.01)
    time.sleep(0.05)

    assert stage.is_alive()
    stop.set()
    stage.join(timeout=2.0)
    assert [f.timestamp for f in detector.submitted] == [1, 2]
    assert stage.failed == 1
