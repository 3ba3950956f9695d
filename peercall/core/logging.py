"""
Centralized logging setup for peercall.
"""
import logging
import datetime
import json
import os
import sys
import tempfile
from typing import Any, Optional


def _resolve_log_dir() -> Optional[str]:
    """Determine a writable log directory, or None when nothing is writable."""
    candidates = []

    env_dir = os.environ.get("PEERCALL_LOG_DIR")
    if env_dir:
        candidates.append(env_dir)

    candidates.append(os.path.join(tempfile.gettempdir(), "peercall-logs"))

    for directory in candidates:
        try:
            os.makedirs(directory, exist_ok=True)
            if os.access(directory, os.W_OK):
                return directory
        except OSError:
            continue

    return None


def setup_logging(level: str = "INFO", log_file: str = "peercall.log") -> logging.Logger:
    """Setup logging configuration with console and file output."""
    handlers = [logging.StreamHandler()]
    log_path = None

    log_dir = _resolve_log_dir()
    if log_dir:
        log_path = os.path.join(log_dir, log_file)
        try:
            handlers.append(logging.FileHandler(log_path, mode='a', encoding='utf-8'))
        except OSError as e:
            print(f"WARNING: Cannot write to log file {log_path}: {e}", file=sys.stderr)
            log_path = None

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%H:%M:%S',
        handlers=handlers
    )

    logger = logging.getLogger("peercall")
    logger.info(f"Logging initialized - output will be written to: {log_path or 'console only'}")

    return logger


def debug_log(message: str, data: Optional[Any] = None, level: str = "INFO") -> None:
    """
    Structured logging helper.

    Args:
        message: The log message
        data: Optional data to log; dicts are pretty printed as JSON
        level: Log level (INFO, DEBUG, WARNING, ERROR)
    """
    timestamp = datetime.datetime.now().strftime("%H:%M:%S.%f")[:-3]
    log_level = getattr(logging, level.upper())

    if data:
        if isinstance(data, dict):
            data_str = json.dumps(data, indent=2, default=str)
            logging.getLogger("peercall").log(log_level, f"[{timestamp}] {message}\nData: {data_str}")
        else:
            logging.getLogger("peercall").log(log_level, f"[{timestamp}] {message} - {data}")
    else:
        logging.getLogger("peercall").log(log_level, f"[{timestamp}] {message}")


class LoggerMixin:
    """Mixin class to add logging capabilities to other classes."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.logger = logging.getLogger(f"{self.__class__.__module__}.{self.__class__.__name__}")

    def log_debug(self, message: str, data: Optional[Any] = None):
        debug_log(message, data, "DEBUG")

    def log_info(self, message: str, data: Optional[Any] = None):
        debug_log(message, data, "INFO")

    def log_warning(self, message: str, data: Optional[Any] = None):
        debug_log(message, data, "WARNING")

    def log_error(self, message: str, data: Optional[Any] = None):
        debug_log(message, data, "ERROR")
