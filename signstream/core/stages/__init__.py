"""
Pipeline stages for the SignStream node.

The processing pipeline is modeled as independent stages
connected by bounded queues:

    CaptureStage → [frame_queue] → DetectionStage → detector
        → RecognitionPipeline window → [window_queue] → ClassificationStage

Each stage runs in its own thread. Bounded queues provide natural
backpressure: if detection is slow, old frames are dropped (not queued).
"""
from .capture import CaptureStage
from .detection import DetectionStage
from .classification import ClassificationStage

__all__ = ["CaptureStage", "DetectionStage", "ClassificationStage"]
