"""
Camera Handler - Reads frames from a local camera through OpenCV.

Implements the FrameSource protocol. Front cameras are mirrored so that
signs reach the detector with the same handedness as in the training data.
"""
import numpy as np
from typing import Optional

import cv2

from signstream.utils.logger import Logger

# Max consecutive failed reads before attempting a camera reopen
MAX_EMPTY_FRAMES = 50


class CameraHandler:
    """Handles a cv2.VideoCapture device as a FrameSource."""

    def __init__(self, config: dict):
        """
        Args:
            config: Camera-specific configuration subset
                    ('index', 'width', 'height', 'fps', 'mirror')
        """
        self.config = config
        self.index = config.get('index', 0)
        self.mirror = config.get('mirror', True)
        self.logger = Logger("CameraHandler")
        self.cap: Optional[cv2.VideoCapture] = None
        self.empty_frame_count = 0

    def start(self) -> bool:
        """Open and configure the camera device."""
        if self.cap is not None:
            return True

        cap = cv2.VideoCapture(self.index)
        if not cap.isOpened():
            self.logger.error(f"Failed to open camera {self.index}")
            return False

        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.config.get('width', 640))
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config.get('height', 480))
        cap.set(cv2.CAP_PROP_FPS, self.config.get('fps', 30))

        self.cap = cap
        self.empty_frame_count = 0
        self.logger.info(
            f"Camera {self.index} opened at "
            f"{int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))}x{int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))}"
        )
        return True

    def read_frame(self) -> Optional[np.ndarray]:
        """Read the next frame, or None if the camera produced nothing."""
        if self.cap is None:
            return None

        ret, frame = self.cap.read()
        if not ret or not self._is_valid_frame(frame):
            self.empty_frame_count += 1
            if self.empty_frame_count == 1:
                self.logger.warning("Captured empty frame, waiting for camera stream...")
            if self.empty_frame_count >= MAX_EMPTY_FRAMES:
                self.logger.warning(f"{MAX_EMPTY_FRAMES} consecutive empty frames. Reopening camera...")
                self.stop()
                self.start()
            return None

        if self.empty_frame_count > 0:
            self.logger.info(f"Camera stream recovered after {self.empty_frame_count} empty frame(s)")
            self.empty_frame_count = 0

        return cv2.flip(frame, 1) if self.mirror else frame

    def stop(self) -> None:
        """Release the camera device."""
        if self.cap is not None:
            self.cap.release()
            self.cap = None
            self.logger.info("Camera released")

    def _is_valid_frame(self, frame) -> bool:
        """Check whether a captured frame contains actual image data."""
        if frame is None:
            return False
        if not isinstance(frame, np.ndarray):
            return False
        return frame.size > 0
