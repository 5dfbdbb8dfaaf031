"""
Global constants for the SignStream node.
"""
from pathlib import Path

# Project Structure
BASE_DIR = Path(__file__).parent.parent
CONFIGS_DIR = BASE_DIR / "configs"
LOGS_DIR = Path.cwd() / "logs"

# Model defaults
DEFAULT_MODEL_ASSET = "hand_landmarker.task"
DEFAULT_CLASSIFIER_MODEL = "models/sign_classifier.pt"
DEFAULT_VOCABULARY = "models/signsList.txt"

# Hand tracking
DEFAULT_DETECTION_CONFIDENCE = 0.5
DEFAULT_TRACKING_CONFIDENCE = 0.5
DEFAULT_PRESENCE_CONFIDENCE = 0.5
DEFAULT_MAX_HANDS = 1

# Windowing
DEFAULT_FRAMES_PER_PREDICTION = 60
DEFAULT_POINTS_PER_HAND = 21
COORDS_PER_POINT = 2

# Worker threads
DEFAULT_DETECTOR_THREADS = 1
DEFAULT_CLASSIFIER_THREADS = 4

# Running modes
RUNNING_MODE_LIVE_STREAM = "live_stream"
RUNNING_MODE_VIDEO = "video"
RUNNING_MODE_IMAGE = "image"
RUNNING_MODES = (RUNNING_MODE_LIVE_STREAM, RUNNING_MODE_VIDEO, RUNNING_MODE_IMAGE)

# Window policies
TRIGGER_CAPACITY_FULL = "capacity_full"
TRIGGER_NONE = "none"
FILL_CAPACITY = "capacity"
FILL_SLIDING = "sliding"

# Filter types
FILTER_BEST_OF = "best_of"
FILTER_THRESHOLD = "threshold"
FILTER_FOCUS = "focus"

# Environment overrides
ENV_MODEL_ASSET = "SIGNSTREAM_MODEL_ASSET"
ENV_CLASSIFIER_MODEL = "SIGNSTREAM_CLASSIFIER_MODEL"
ENV_VOCABULARY = "SIGNSTREAM_VOCABULARY"
