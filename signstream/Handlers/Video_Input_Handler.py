"""Video Input Handler - Replays a recorded clip as a FrameSource.

Used with `--video` to run the recognizer on recordings instead of a camera.
Clips recorded with a front camera can be mirrored so that handedness
matches live capture.
"""
from pathlib import Path
from typing import Optional

import cv2
import numpy as np

from signstream.utils.logger import Logger


class VideoInputHandler:
    """Reads a video file frame by frame through cv2.VideoCapture."""

    def __init__(self, video_path: str, mirror: bool = False):
        self.path = Path(video_path)
        self.mirror = mirror
        self.logger = Logger("VideoInputHandler")
        self.cap: Optional[cv2.VideoCapture] = None
        self.native_fps = 0.0
        self.frames_read = 0

    def start(self) -> bool:
        if not self.path.is_file():
            self.logger.error(f"Video file not found: {self.path}")
            return False

        cap = cv2.VideoCapture(str(self.path))
        if not cap.isOpened():
            cap.release()
            self.logger.error(f"Cannot decode video file: {self.path}")
            return False

        self.cap = cap
        self.native_fps = cap.get(cv2.CAP_PROP_FPS) or 0.0
        self.frames_read = 0
        self.logger.info(
            f"Replaying {self.path.name} "
            f"({int(cap.get(cv2.CAP_PROP_FRAME_COUNT))} frames at {self.native_fps:.1f} FPS)"
        )
        return True

    def read_frame(self) -> Optional[np.ndarray]:
        """Next BGR frame, or None at the end of the clip."""
        if self.cap is None:
            return None

        ok, frame = self.cap.read()
        if not ok or frame is None:
            return None

        self.frames_read += 1
        return cv2.flip(frame, 1) if self.mirror else frame

    def stop(self) -> None:
        if self.cap is None:
            return
        self.cap.release()
        self.cap = None
        self.logger.debug(f"Released {self.path.name} after {self.frames_read} frame(s)")
