"""Hand Landmark Handler - MediaPipe Tasks HandLandmarker behind the HandDetector protocol.

Supports the three MediaPipe running modes:
    live_stream  detect_async(); results arrive on MediaPipe's own result thread
                 and are paired with their source image by timestamp.
    video        detect_for_video(); synchronous, timestamps must increase.
    image        detect(); synchronous, timestamps ignored by the model.
"""
from pathlib import Path
from typing import Any, Callable, Optional

import cv2
import numpy as np

from signstream.core.correlation import CorrelationTable
from signstream.core.events import Frame, HandDetection, LandmarkFrame
from signstream.core.registry import CallbackRegistry
from signstream.utils import constants as C
from signstream.utils.config import PipelineConfig
from signstream.utils.failures import DetectorError, ModelLoadError
from signstream.utils.logger import Logger


def landmark_frame_from_result(result: Any, timestamp: int) -> LandmarkFrame:
    """Convert a HandLandmarkerResult into a LandmarkFrame of (x, y) points."""
    hands = getattr(result, "hand_landmarks", None) or []
    return LandmarkFrame(
        timestamp=timestamp,
        hands=tuple(
            tuple((float(lm.x), float(lm.y)) for lm in hand)
            for hand in hands
        ),
    )


class MediaPipeHandDetector:
    """Handles hand-landmark detection and result delivery.

    Implements the HandDetector protocol:
        submit(frame) -> token
        add_callback(handler) / add_error_callback(handler)
        close() -> None
    """

    def __init__(
        self,
        config: PipelineConfig,
        landmarker: Any = None,
        image_factory: Optional[Callable[[np.ndarray], Any]] = None,
    ):
        """
        Args:
            config: Frozen pipeline settings (model asset, confidences, max hands, mode).
            landmarker: Pre-built landmarker; when omitted one is created from the model asset.
            image_factory: Converts a BGR array into the landmarker input (default: mp.Image).

        Raises:
            ModelLoadError: The model asset is missing or MediaPipe rejects it.
        """
        self.config = config
        self.running_mode = config.running_mode
        self.logger = Logger("HandLandmarkHandler")
        self.correlation = CorrelationTable()
        self.callbacks = CallbackRegistry("hand_detection")
        self.error_callbacks = CallbackRegistry("hand_detection_errors")
        self._image_factory = image_factory or self._to_mp_image

        if config.detector_threads != C.DEFAULT_DETECTOR_THREADS:
            self.logger.warning(
                f"detector.threads={config.detector_threads} ignored; "
                "MediaPipe manages its own worker threads"
            )

        self._landmarker = landmarker if landmarker is not None else self._create_landmarker()
        self.logger.info(f"Hand landmarker ready ({self.running_mode}, up to {config.max_hands} hand(s))")

    def _create_landmarker(self):
        model_path = Path(self.config.model_asset)
        if not model_path.exists():
            raise ModelLoadError(f"Hand landmarker model not found: {model_path}")

        try:
            from mediapipe.tasks import python as mp_python
            from mediapipe.tasks.python import vision
        except ImportError as e:
            raise ModelLoadError(
                "MediaPipe is required for hand detection. Install it with: pip install mediapipe"
            ) from e

        modes = {
            C.RUNNING_MODE_LIVE_STREAM: vision.RunningMode.LIVE_STREAM,
            C.RUNNING_MODE_VIDEO: vision.RunningMode.VIDEO,
            C.RUNNING_MODE_IMAGE: vision.RunningMode.IMAGE,
        }

        options = vision.HandLandmarkerOptions(
            base_options=mp_python.BaseOptions(model_asset_path=str(model_path)),
            running_mode=modes[self.running_mode],
            num_hands=self.config.max_hands,
            min_hand_detection_confidence=self.config.hand_detection_confidence,
            min_hand_presence_confidence=self.config.hand_presence_confidence,
            min_tracking_confidence=self.config.hand_tracking_confidence,
            result_callback=(
                self._on_live_result
                if self.running_mode == C.RUNNING_MODE_LIVE_STREAM else None
            ),
        )

        try:
            return vision.HandLandmarker.create_from_options(options)
        except (RuntimeError, ValueError, OSError) as e:
            raise ModelLoadError(f"Failed to load hand landmarker from {model_path}: {e}") from e

    # ── HandDetector protocol ─────────────────────────────────────────

    def submit(self, frame: Frame) -> int:
        """Run detection on a frame. Failures go to the error callbacks, never raised."""
        timestamp = frame.timestamp
        try:
            mp_image = self._image_factory(frame.image)

            if self.running_mode == C.RUNNING_MODE_LIVE_STREAM:
                self.correlation.submit(timestamp, frame.image)
                self._landmarker.detect_async(mp_image, timestamp)
            elif self.running_mode == C.RUNNING_MODE_VIDEO:
                result = self._landmarker.detect_for_video(mp_image, timestamp)
                self._deliver(result, timestamp, frame.image)
            else:
                result = self._landmarker.detect(mp_image)
                self._deliver(result, timestamp, frame.image)
        except Exception as e:
            self.correlation.resolve(timestamp)
            self._report(DetectorError(f"Hand detection failed at {timestamp}: {e}"))

        return timestamp

    def add_callback(self, handler: Callable[[HandDetection], None], name: Optional[str] = None):
        return self.callbacks.add(handler, name)

    def remove_callback(self, handle) -> bool:
        return self.callbacks.remove(handle)

    def add_error_callback(self, handler: Callable[[Exception], None], name: Optional[str] = None):
        return self.error_callbacks.add(handler, name)

    def remove_error_callback(self, handle) -> bool:
        return self.error_callbacks.remove(handle)

    def close(self) -> None:
        if self._landmarker is not None:
            self._landmarker.close()
            self._landmarker = None
        self.correlation.clear()
        self.logger.info("Hand landmarker closed")

    # ── Internals ─────────────────────────────────────────────────────

    def _on_live_result(self, result: Any, output_image: Any, timestamp_ms: int) -> None:
        """MediaPipe result listener (live-stream mode)."""
        image = self.correlation.resolve(timestamp_ms)
        if image is None:
            self.logger.debug(f"No source image retained for {timestamp_ms}")
        self._deliver(result, timestamp_ms, image)

    def _deliver(self, result: Any, timestamp: int, image: Optional[np.ndarray]) -> None:
        landmarks = landmark_frame_from_result(result, timestamp)
        self.callbacks.dispatch(HandDetection(landmarks=landmarks, image=image))

    def _report(self, error: DetectorError) -> None:
        self.logger.warning(error.message)
        self.error_callbacks.dispatch(error)

    @staticmethod
    def _to_mp_image(image: np.ndarray):
        import mediapipe as mp

        rgb = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
        return mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb)
