import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from signstream.utils.constants import LOGS_DIR

LOG_FORMAT = '[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
LOG_FILE_NAME = "signstream.log"
DEFAULT_MAX_BYTES = 5 * 1024 * 1024

_SIZE_UNITS = {'MB': 1024 * 1024, 'KB': 1024}


def _parse_rotation(value) -> int:
    """Parse a rotation size like "5MB" or "512KB" into bytes. Unparseable sizes fall back to 5MB."""
    text = str(value).strip().upper()
    for unit, factor in _SIZE_UNITS.items():
        if text.endswith(unit):
            try:
                return int(text[:-len(unit)]) * factor
            except ValueError:
                break
    return DEFAULT_MAX_BYTES


def _file_handler(settings: dict, formatter: logging.Formatter) -> Optional[logging.Handler]:
    log_dir = Path(settings.get('dir', LOGS_DIR))
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            log_dir / LOG_FILE_NAME,
            maxBytes=_parse_rotation(settings.get('rotation', '5MB')),
            backupCount=settings.get('backup_count', 5),
        )
    except OSError as e:
        logging.getLogger("Logger").warning(f"File logging disabled, cannot write to {log_dir}: {e}")
        return None
    handler.setFormatter(formatter)
    return handler


class Logger:
    """Named logger used by every component; `setup` configures the root logger once per process."""

    _configured = False

    @classmethod
    def setup(cls, settings: dict):
        """
        Args:
            settings: The 'logging' config section: 'level', 'rotation',
                      'backup_count', 'file' (bool) and optional 'dir'
        """
        if cls._configured:
            return

        root = logging.getLogger()
        root.setLevel(getattr(logging, str(settings.get('level', 'INFO')).upper(), logging.INFO))

        if not root.handlers:
            formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

            console = logging.StreamHandler(sys.stdout)
            console.setFormatter(formatter)
            root.addHandler(console)

            if settings.get('file', True):
                handler = _file_handler(settings, formatter)
                if handler is not None:
                    root.addHandler(handler)

        cls._configured = True

    def __init__(self, name: str = "SignStream"):
        self.logger = logging.getLogger(name)

    def info(self, message: str):
        self.logger.info(message)

    def warning(self, message: str):
        self.logger.warning(message)

    def error(self, message: str):
        self.logger.error(message)

    def debug(self, message: str):
        self.logger.debug(message)

    def critical(self, message: str):
        self.logger.critical(message)
