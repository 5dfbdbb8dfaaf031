"""Tests for RecognitionPipeline wiring, generation tracking and error routing."""
import threading
from dataclasses import replace
from queue import Queue

import numpy as np
import pytest

from signstream.core.events import HandDetection, LandmarkFrame, WindowSnapshot
from signstream.core.filters import FilterChain, ThresholdFilter
from signstream.core.pipeline import RecognitionPipeline
from signstream.utils.failures import ClassifierError, DetectorError, FailureManager, FilterInvariantError

from conftest import FakeClassifier, FakeDetector, make_frame, make_frames


@pytest.fixture
def classifier(labels):
    return FakeClassifier(labels, [0.1, 0.7, 0.2])


@pytest.fixture
def pipeline(small_config, classifier):
    p = RecognitionPipeline(small_config, classifier)
    p.poll()
    return p


def collect(registry_add):
    seen = []
    registry_add(seen.append)
    return seen


class TestSessionControl:
    def test_starts_inactive(self, small_config, classifier):
        p = RecognitionPipeline(small_config, classifier)
        assert not p.active
        assert p.generation == 0

    def test_poll_and_pause_bump_generation(self, pipeline):
        assert pipeline.active
        g = pipeline.generation
        pipeline.pause()
        assert not pipeline.active
        assert pipeline.generation == g + 1
        pipeline.poll()
        assert pipeline.generation == g + 2

    def test_paused_pipeline_ignores_landmarks(self, pipeline):
        pipeline.pause()
        assert pipeline.add_landmarks(make_frame(0, points=1)) is False
        assert pipeline.window.size == 0

    def test_pause_clears_window(self, pipeline):
        pipeline.add_landmarks(make_frame(0, points=1))
        pipeline.pause()
        assert pipeline.window.size == 0


class TestInlineClassification:
    def test_recognizes_sign_after_window_fills(self, pipeline, classifier):
        signs = collect(pipeline.add_sign_callback)

        for frame in make_frames(4, points=1):
            pipeline.add_landmarks(frame)

        assert len(classifier.calls) == 1
        np.testing.assert_array_equal(classifier.calls[0], [1, 1, 2, 2, 3, 3])
        assert len(signs) == 1
        assert signs[0].label == "thanks"
        assert signs[0].probability == pytest.approx(0.7)
        assert signs[0].generation == pipeline.generation

    def test_frames_without_hand_are_not_buffered(self, pipeline):
        assert pipeline.on_detection(HandDetection(LandmarkFrame(timestamp=0))) is False
        assert pipeline.window.size == 0

    def test_filtered_out_sign_is_not_dispatched(self, small_config, classifier):
        p = RecognitionPipeline(small_config, classifier, filter_chain=FilterChain([ThresholdFilter(0.9)]))
        p.poll()
        signs = collect(p.add_sign_callback)
        for frame in make_frames(4, points=1):
            p.add_landmarks(frame)
        assert len(classifier.calls) == 1
        assert signs == []

    def test_flush_without_interpolation_classifies_nothing(self, pipeline, classifier):
        pipeline.add_landmarks(make_frame(0, points=1))
        assert pipeline.flush() == 1
        assert classifier.calls == []

    def test_flush_with_interpolation_pads_window(self, pipeline, classifier):
        pipeline.interpolate = True
        signs = collect(pipeline.add_sign_callback)
        pipeline.add_landmarks(make_frame(0, 0.0, points=1))
        pipeline.add_landmarks(make_frame(1, 1.0, points=1))

        pipeline.flush()
        np.testing.assert_array_equal(classifier.calls[0], [0, 0, 1, 1, 1, 1])
        assert [s.label for s in signs] == ["thanks"]

    def test_flush_while_paused_is_noop(self, pipeline):
        pipeline.add_landmarks(make_frame(0, points=1))
        pipeline.pause()
        assert pipeline.flush() == 0

    def test_sign_handler_may_pause(self, pipeline):
        pipeline.add_sign_callback(lambda event: pipeline.pause())
        for frame in make_frames(4, points=1):
            pipeline.add_landmarks(frame)
        assert not pipeline.active


class TestGenerations:
    def test_snapshot_from_previous_generation_is_discarded(self, pipeline, classifier):
        signs = collect(pipeline.add_sign_callback)
        snapshot = WindowSnapshot(frames=tuple(make_frames(3, points=1)), generation=pipeline.generation)

        pipeline.pause()
        pipeline.poll()

        assert pipeline.process_window(snapshot) is None
        assert classifier.calls == []
        assert signs == []

    def test_pause_during_classification_drops_result(self, small_config, labels):
        class PausingClassifier(FakeClassifier):
            def classify(self, tensor):
                pipeline.pause()
                return super().classify(tensor)

        pipeline = RecognitionPipeline(small_config, PausingClassifier(labels, [0.2, 0.3, 0.5]))
        pipeline.poll()
        signs = collect(pipeline.add_sign_callback)

        snapshot = WindowSnapshot(frames=tuple(make_frames(3, points=1)), generation=pipeline.generation)
        assert pipeline.process_window(snapshot) is None
        assert signs == []

    def test_pause_just_before_delivery_drops_result(self, pipeline, monkeypatch):
        signs = collect(pipeline.add_sign_callback)
        log_debug = pipeline.logger.debug

        def pause_on_recognition(message):
            if message.startswith("Recognized"):
                pipeline.pause()
            log_debug(message)

        monkeypatch.setattr(pipeline.logger, "debug", pause_on_recognition)
        snapshot = WindowSnapshot(frames=tuple(make_frames(3, points=1)), generation=pipeline.generation)

        assert pipeline.process_window(snapshot) is None
        assert signs == []

    def test_pause_from_other_thread_waits_for_delivery(self, pipeline):
        observed = []

        def slow_handler(event):
            pauser = threading.Thread(target=pipeline.pause)
            pauser.start()
            pauser.join(timeout=0.1)
            observed.append((pauser.is_alive(), event.generation))
            observed.append(pauser)

        pipeline.add_sign_callback(slow_handler)
        snapshot = WindowSnapshot(frames=tuple(make_frames(3, points=1)), generation=pipeline.generation)
        event = pipeline.process_window(snapshot)

        blocked, generation = observed[0]
        observed[1].join(timeout=2.0)
        assert blocked
        assert generation == event.generation
        assert not pipeline.active
        assert pipeline.generation == event.generation + 1

    def test_current_snapshot_is_processed(self, pipeline):
        snapshot = WindowSnapshot(frames=tuple(make_frames(3, points=1)), generation=pipeline.generation)
        event = pipeline.process_window(snapshot)
        assert event.label == "thanks"


class TestWorkQueue:
    def test_triggered_window_is_queued(self, small_config, classifier):
        work = Queue(maxsize=4)
        p = RecognitionPipeline(small_config, classifier, work_queue=work)
        p.poll()

        for frame in make_frames(4, points=1):
            p.add_landmarks(frame)

        assert classifier.calls == []
        snapshot = work.get_nowait()
        assert [f.timestamp for f in snapshot.frames] == [1, 2, 3]
        assert snapshot.generation == p.generation
        assert p.process_window(snapshot).label == "thanks"

    def test_full_queue_drops_window(self, small_config, classifier):
        work = Queue(maxsize=1)
        p = RecognitionPipeline(small_config, classifier, work_queue=work)
        p.poll()

        for frame in make_frames(5, points=1):
            p.add_landmarks(frame)

        assert work.qsize() == 1
        assert [f.timestamp for f in work.get_nowait().frames] == [1, 2, 3]


class TestErrors:
    def test_classifier_error_goes_to_error_channel(self, small_config, labels):
        failures = FailureManager()
        classifier = FakeClassifier(labels, [0.1, 0.2, 0.7], error=RuntimeError("bad weights"))
        p = RecognitionPipeline(small_config, classifier, failures=failures)
        p.poll()
        errors = collect(p.add_error_callback)
        signs = collect(p.add_sign_callback)

        for frame in make_frames(4, points=1):
            p.add_landmarks(frame)

        assert signs == []
        assert len(errors) == 1
        assert errors[0].source == "classifier"
        assert isinstance(errors[0].error, ClassifierError)
        assert isinstance(errors[0].context, WindowSnapshot)
        assert failures.get_recent_history() == [errors[0].error]
        assert p.active

    def test_label_mismatch_raises(self, small_config):
        p = RecognitionPipeline(small_config, FakeClassifier(["a", "b"], [0.1, 0.2, 0.7]))
        p.poll()
        snapshot = WindowSnapshot(frames=tuple(make_frames(3, points=1)), generation=p.generation)
        with pytest.raises(FilterInvariantError):
            p.process_window(snapshot)

    def test_detector_errors_are_forwarded(self, pipeline):
        detector = FakeDetector()
        pipeline.attach_detector(detector)
        errors = collect(pipeline.add_error_callback)

        detector.error_callbacks.dispatch(DetectorError("camera glitch"))
        assert [e.source for e in errors] == ["detector"]

    def test_attached_detector_feeds_window(self, pipeline):
        detector = FakeDetector()
        pipeline.attach_detector(detector)
        detector.callbacks.dispatch(HandDetection(make_frame(0, points=1)))
        assert pipeline.window.size == 1

    def test_reattaching_does_not_duplicate(self, pipeline):
        detector = FakeDetector()
        pipeline.attach_detector(detector)
        pipeline.attach_detector(detector)
        assert len(detector.callbacks) == 1


def test_window_capacity_follows_config(small_config, classifier):
    p = RecognitionPipeline(replace(small_config, window_capacity=5), classifier)
    p.poll()
    for frame in make_frames(5, points=1):
        p.add_landmarks(frame)
    assert classifier.calls == []
    p.add_landmarks(make_frame(5, points=1))
    assert len(classifier.calls) == 1
