"""
Configuration management for the SignStream node.

`Config` is the mutable loader (JSON files merged in name order, then
environment overrides). `PipelineConfig` is the frozen value built from it
once at startup and handed to every component.
"""
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from signstream.utils import constants as C
from signstream.utils.failures import ConfigError
from signstream.utils.logger import Logger


class Config:
    """Configuration manager that merges multiple domain-specific JSON files."""

    def __init__(self, configs_dir: Optional[str] = None):
        """
        Initialize configuration by loading all JSON files in the configs directory.

        Args:
            configs_dir: Path to directory containing JSON configs (defaults to signstream/configs)
        """
        self.config: Dict[str, Any] = {}
        self.logger = Logger("Config")

        configs_dir = Path(configs_dir) if configs_dir else C.CONFIGS_DIR

        if configs_dir.exists() and configs_dir.is_dir():
            for config_file in sorted(configs_dir.glob("*.json")):
                self.load_from_file(str(config_file))
        else:
            self.logger.warning(f"Config directory not found: {configs_dir}")

        self._load_from_env()

    def _load_from_env(self):
        """Load configuration from environment variables."""
        if os.environ.get(C.ENV_MODEL_ASSET):
            self.config.setdefault('detector', {})['model_asset'] = os.environ[C.ENV_MODEL_ASSET]
        if os.environ.get(C.ENV_CLASSIFIER_MODEL):
            self.config.setdefault('classifier', {})['model_path'] = os.environ[C.ENV_CLASSIFIER_MODEL]
        if os.environ.get(C.ENV_VOCABULARY):
            self.config.setdefault('classifier', {})['vocabulary_path'] = os.environ[C.ENV_VOCABULARY]

    def load_from_file(self, path: str):
        """Load configuration from JSON file."""
        try:
            with open(path, 'r') as f:
                user_config = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            self.logger.warning(f"Failed to load config from {path}: {e}")
            return
        self.merge(user_config)

    def merge(self, user_config: Dict[str, Any]):
        """Merge user config into the current values recursively."""
        def update(d, u):
            for k, v in u.items():
                if isinstance(v, dict):
                    d[k] = update(d.get(k, {}), v)
                else:
                    d[k] = v
            return d

        update(self.config, user_config)

    def get_int(self, key: str, default: int = 0) -> int:
        """Get config value as integer."""
        val = self.get(key, default)
        try:
            return int(val)
        except (ValueError, TypeError):
            return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        """Get config value as float."""
        val = self.get(key, default)
        try:
            return float(val)
        except (ValueError, TypeError):
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        """Get config value as boolean."""
        val = self.get(key, default)
        if isinstance(val, bool):
            return val
        if isinstance(val, str):
            return val.lower() in ('true', '1', 'yes', 'on')
        return bool(val)

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dotted key."""
        value = self.config
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value


@dataclass(frozen=True)
class FilterSpec:
    """One entry of the configured filter chain."""
    type: str
    value: Any = None


@dataclass(frozen=True)
class PipelineConfig:
    """Read-only settings shared by the detector, window, assembler and classifier."""
    model_asset: str = C.DEFAULT_MODEL_ASSET
    classifier_model: str = C.DEFAULT_CLASSIFIER_MODEL
    vocabulary_path: str = C.DEFAULT_VOCABULARY
    hand_detection_confidence: float = C.DEFAULT_DETECTION_CONFIDENCE
    hand_tracking_confidence: float = C.DEFAULT_TRACKING_CONFIDENCE
    hand_presence_confidence: float = C.DEFAULT_PRESENCE_CONFIDENCE
    max_hands: int = C.DEFAULT_MAX_HANDS
    frames_per_prediction: int = C.DEFAULT_FRAMES_PER_PREDICTION
    points_per_hand: int = C.DEFAULT_POINTS_PER_HAND
    detector_threads: int = C.DEFAULT_DETECTOR_THREADS
    classifier_threads: int = C.DEFAULT_CLASSIFIER_THREADS
    running_mode: str = C.RUNNING_MODE_LIVE_STREAM
    classifier_device: str = "cpu"
    window_capacity: Optional[int] = None
    window_trigger: str = C.TRIGGER_CAPACITY_FULL
    window_fill: str = C.FILL_CAPACITY
    interpolate: bool = False
    filters: Tuple[FilterSpec, ...] = field(default_factory=lambda: (FilterSpec(C.FILTER_BEST_OF),))

    def __post_init__(self):
        if self.window_capacity is None:
            object.__setattr__(self, 'window_capacity', self.frames_per_prediction)
        self.validate()

    @property
    def tensor_length(self) -> int:
        """Flattened classifier input length: frames * points * (x, y)."""
        return self.frames_per_prediction * self.points_per_hand * C.COORDS_PER_POINT

    def validate(self):
        """Raise ConfigError if any value is out of range."""
        for name in ('max_hands', 'frames_per_prediction', 'points_per_hand',
                     'detector_threads', 'classifier_threads', 'window_capacity'):
            if getattr(self, name) <= 0:
                raise ConfigError(f"'{name}' must be positive, got {getattr(self, name)}")

        for name in ('hand_detection_confidence', 'hand_tracking_confidence',
                     'hand_presence_confidence'):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigError(f"'{name}' must be within [0, 1], got {value}")

        if self.running_mode not in C.RUNNING_MODES:
            raise ConfigError(f"Unknown running mode: {self.running_mode}")
        if self.window_trigger not in (C.TRIGGER_CAPACITY_FULL, C.TRIGGER_NONE):
            raise ConfigError(f"Unknown window trigger: {self.window_trigger}")
        if self.window_fill not in (C.FILL_CAPACITY, C.FILL_SLIDING):
            raise ConfigError(f"Unknown window fill: {self.window_fill}")

        # A smaller window only ever yields short snapshots, which need padding
        if (self.window_trigger == C.TRIGGER_CAPACITY_FULL and not self.interpolate
                and self.window_capacity < self.frames_per_prediction):
            raise ConfigError(
                f"window.capacity={self.window_capacity} is below "
                f"frames_per_prediction={self.frames_per_prediction}; enable pipeline.interpolate "
                "or raise the capacity"
            )

        for spec in self.filters:
            if spec.type not in (C.FILTER_BEST_OF, C.FILTER_THRESHOLD, C.FILTER_FOCUS):
                raise ConfigError(f"Unknown filter type: {spec.type}")

    @classmethod
    def from_config(cls, config: Config) -> "PipelineConfig":
        """Freeze the relevant sections of a loaded Config."""
        filters = config.get('filters')
        if filters is None:
            filter_specs = (FilterSpec(C.FILTER_BEST_OF),)
        else:
            try:
                filter_specs = tuple(
                    FilterSpec(type=entry['type'], value=_freeze(entry.get('value')))
                    for entry in filters
                )
            except (KeyError, TypeError) as e:
                raise ConfigError(f"Invalid filter entry in config: {e}") from e

        capacity = config.get('window.capacity')

        return cls(
            model_asset=config.get('detector.model_asset', C.DEFAULT_MODEL_ASSET),
            classifier_model=config.get('classifier.model_path', C.DEFAULT_CLASSIFIER_MODEL),
            vocabulary_path=config.get('classifier.vocabulary_path', C.DEFAULT_VOCABULARY),
            hand_detection_confidence=config.get_float(
                'detector.detection_confidence', C.DEFAULT_DETECTION_CONFIDENCE),
            hand_tracking_confidence=config.get_float(
                'detector.tracking_confidence', C.DEFAULT_TRACKING_CONFIDENCE),
            hand_presence_confidence=config.get_float(
                'detector.presence_confidence', C.DEFAULT_PRESENCE_CONFIDENCE),
            max_hands=config.get_int('detector.max_hands', C.DEFAULT_MAX_HANDS),
            frames_per_prediction=config.get_int(
                'pipeline.frames_per_prediction', C.DEFAULT_FRAMES_PER_PREDICTION),
            points_per_hand=config.get_int('pipeline.points_per_hand', C.DEFAULT_POINTS_PER_HAND),
            detector_threads=config.get_int('detector.threads', C.DEFAULT_DETECTOR_THREADS),
            classifier_threads=config.get_int('classifier.threads', C.DEFAULT_CLASSIFIER_THREADS),
            running_mode=config.get('detector.running_mode', C.RUNNING_MODE_LIVE_STREAM),
            classifier_device=config.get('classifier.device', 'cpu'),
            window_capacity=int(capacity) if capacity is not None else None,
            window_trigger=config.get('window.trigger', C.TRIGGER_CAPACITY_FULL),
            window_fill=config.get('window.fill', C.FILL_CAPACITY),
            interpolate=config.get_bool('pipeline.interpolate', False),
            filters=filter_specs,
        )


def _freeze(value):
    if isinstance(value, list):
        return tuple(value)
    return value
