"""
SignStream Node entry point.

Pipeline architecture:
    CaptureStage → [frame_queue] → DetectionStage → HandLandmarker
        → RecognitionPipeline (window) → [window_queue] → ClassificationStage
                                                              ↓
                                                    sign / error callbacks
"""
import argparse
import signal
import sys
from queue import Queue
from threading import Event
from typing import Optional

from signstream.core.events import PipelineError, SignRecognized
from signstream.core.pipeline import RecognitionPipeline
from signstream.core.stages import CaptureStage, ClassificationStage, DetectionStage
from signstream.utils.config import Config, PipelineConfig
from signstream.utils import constants as C
from signstream.utils.failures import ConfigError, FailureManager, ModelLoadError
from signstream.utils.logger import Logger


def parse_args(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="SignStream - streaming sign language recognition")
    parser.add_argument(
        '--video', '-v',
        type=str,
        default=None,
        help='Path to video file for testing (bypasses camera)'
    )
    parser.add_argument(
        '--config-dir', '-c',
        type=str,
        default=None,
        help='Directory of JSON config files (defaults to the bundled configs)'
    )
    parser.add_argument(
        '--interpolate',
        action='store_true',
        help='Classify short windows by padding them with their middle frame'
    )
    parser.add_argument(
        '--threshold',
        type=float,
        default=None,
        help='Only report signs whose probability is above this value'
    )
    parser.add_argument(
        '--focus',
        type=str,
        default=None,
        help='Comma-separated labels to restrict recognition to'
    )
    return parser.parse_args(argv)


def cli_filter_overrides(args) -> Optional[list]:
    """Filter chain entries implied by --focus / --threshold, or None to keep the config's."""
    if args.focus is None and args.threshold is None:
        return None

    filters = []
    if args.focus:
        filters.append({"type": C.FILTER_FOCUS, "value": [s.strip() for s in args.focus.split(",") if s.strip()]})
    if args.threshold is not None:
        filters.append({"type": C.FILTER_THRESHOLD, "value": args.threshold})
    filters.append({"type": C.FILTER_BEST_OF})
    return filters


class SignStreamNode:
    """
    SignStream Node Orchestrator.

    Wires together:
      - Frame source (camera or video file)
      - Hand-landmark detector and sign classifier adapters
      - RecognitionPipeline (window, assembler, filters, generation counter)
      - Pipeline stages (Capture → Detection, Classification) via bounded Queues
    """

    def __init__(self, config: Config, video_path: Optional[str] = None):
        # ── 1. Foundation ────────────────────────────────────────────
        self.config = config
        Logger.setup(self.config.get('logging', {}))
        self.logger = Logger("SignStreamNode")
        self.logger.info("Initializing SignStream Node...")

        self.settings = PipelineConfig.from_config(self.config)
        self.failures = FailureManager(self.config.get('failures', {}))
        self.stop_event = Event()

        # ── 2. Bounded Queues (pipeline backpressure) ────────────────
        self.frame_queue = Queue(maxsize=2)
        self.window_queue = Queue(maxsize=4)

        # ── 3. Frame Source (Camera or Video) ────────────────────────
        camera_conf = self.config.get('camera', {})
        if video_path:
            from signstream.Handlers.Video_Input_Handler import VideoInputHandler
            self.frame_source = VideoInputHandler(video_path, mirror=camera_conf.get('mirror_video', False))
            self.source_type = "video"
            self.logger.info(f"Video test mode: {video_path}")
        else:
            from signstream.Handlers.Camera_Handler import CameraHandler
            self.frame_source = CameraHandler(camera_conf)
            self.source_type = "camera"

        # ── 4. Models (construction failure is fatal) ───────────────
        from signstream.Handlers.Classifier_Handler import TorchSignClassifier
        from signstream.Handlers.Hand_Landmark_Handler import MediaPipeHandDetector

        self.classifier = TorchSignClassifier(self.settings)
        self.detector = MediaPipeHandDetector(self.settings)

        # ── 5. Recognition pipeline ──────────────────────────────────
        self.pipeline = RecognitionPipeline(
            config=self.settings,
            classifier=self.classifier,
            work_queue=self.window_queue,
            failures=self.failures,
        )
        self.pipeline.attach_detector(self.detector)
        self.pipeline.add_sign_callback(self._on_sign, name="node_log")
        self.pipeline.add_error_callback(self._on_error, name="node_log")

        # ── 6. Pipeline Stages ───────────────────────────────────────
        self.capture_stage = CaptureStage(
            source=self.frame_source,
            out_queue=self.frame_queue,
            stop_event=self.stop_event,
            fps=self.config.get_int('camera.fps', 30),
            loop_video=self.config.get_bool('camera.loop_video', True),
            source_type=self.source_type,
        )
        self.detection_stage = DetectionStage(
            in_queue=self.frame_queue,
            detector=self.detector,
            stop_event=self.stop_event,
            is_active=lambda: self.pipeline.active,
        )
        self.classification_stage = ClassificationStage(
            in_queue=self.window_queue,
            pipeline=self.pipeline,
            stop_event=self.stop_event,
        )

        self.logger.info(
            f"SignStream Node initialized ({self.settings.frames_per_prediction} frames/prediction, "
            f"{len(self.classifier.labels)} labels, filters: {self.pipeline.filter_chain})"
        )

    def _on_sign(self, event: SignRecognized):
        self.logger.info(f"Sign: {event.label} ({event.probability:.2f})")

    def _on_error(self, event: PipelineError):
        self.logger.warning(f"{event.source} error: {event.error}")

    def _setup_signals(self):
        """Handle OS signals for graceful shutdown."""
        def handler(sig, frame):
            self.logger.info("Shutdown signal received")
            self.stop_event.set()
        signal.signal(signal.SIGINT, handler)
        signal.signal(signal.SIGTERM, handler)

    def poll(self):
        self.pipeline.poll()

    def pause(self):
        self.pipeline.pause()

    def start(self):
        """Start all pipeline stages and block until shutdown."""
        self.logger.info("Starting SignStream Node services...")
        self._setup_signals()

        self.classification_stage.start()
        self.detection_stage.start()
        self.capture_stage.start()
        self.poll()

        self.logger.info("Pipeline stages running")
        try:
            while not self.stop_event.wait(timeout=0.5):
                if not self.capture_stage.is_alive():
                    self.logger.info("Frame source exhausted")
                    break
        finally:
            self.stop()

    def stop(self):
        """Gracefully shutdown all components."""
        self.logger.info("Stopping SignStream Node...")
        self.pipeline.pause()
        self.stop_event.set()

        for stage in [self.capture_stage, self.detection_stage, self.classification_stage]:
            if stage.is_alive():
                stage.join(timeout=2.0)

        self.detector.close()
        self.pipeline.signs.clear()
        self.pipeline.errors.clear()
        self.logger.info("SignStream Node stopped successfully")


def main(argv=None) -> int:
    args = parse_args(argv)

    config = Config(args.config_dir)
    if args.interpolate:
        config.merge({"pipeline": {"interpolate": True}})
    filters = cli_filter_overrides(args)
    if filters is not None:
        config.config['filters'] = filters

    try:
        node = SignStreamNode(config, video_path=args.video)
    except (ModelLoadError, ConfigError) as e:
        Logger("SignStreamNode").critical(f"Cannot start: {e.message}")
        return 1

    node.start()
    return 0 if node.classification_stage.error is None else 2


if __name__ == "__main__":
    sys.exit(main())
