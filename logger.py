from __future__ import annotations

import os
import logging
import logging.handlers
import traceback
import json
import datetime as _dt
from typing import Any, Dict, Optional


_ROOT_LOGGER = 'iterations'


def _backend_root() -> str:
    """Returns the repository root (where this file lives)."""
    return os.path.dirname(os.path.abspath(__file__))


def get_log_dir() -> str:
    """Returns the logs directory, honouring LOG_DIR when set."""
    logs = os.getenv('LOG_DIR') or os.path.join(_backend_root(), 'logs')
    try:
        os.makedirs(logs, exist_ok=True)
    except OSError:
        pass
    return logs


def get_logger(name: str = _ROOT_LOGGER, level: Optional[int] = None) -> logging.Logger:
    """Get a configured logger with rotation and proper formatting.

    Args:
        name: Logger name (default: 'iterations')
        level: Log level override (default: DEBUG if DEBUG env var, else INFO)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid duplicate handlers if logger already configured
    if logger.handlers:
        return logger

    if level is None:
        level = logging.DEBUG if os.getenv('DEBUG') else logging.INFO
    logger.setLevel(level)

    formatter = logging.Formatter(
        '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%dT%H:%M:%SZ'
    )

    log_path = os.path.join(get_log_dir(), 'iterations.log')
    try:
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=5*1024*1024,
            backupCount=3,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except OSError:
        # Read-only filesystems still get console output below
        logger.addHandler(logging.NullHandler())

    if os.getenv('DEBUG'):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger


def _now_iso() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat().replace('+00:00', 'Z')


def log_event(event: str, message: str, level: int = logging.INFO) -> None:
    """Log an event with the specified level.

    Args:
        event: Event identifier (e.g., 'ITERATION_CREATED', 'SESSION_CLEARED')
        message: Log message
        level: Log level (default: INFO)
    """
    try:
        get_logger().log(level, f"[{event}] {message}")
    except Exception:
        # Analysis must not break on logging
        pass


def log_exception(event: str, exc: Exception, level: int = logging.ERROR) -> None:
    """Log an exception with full traceback."""
    try:
        tb = traceback.format_exc()
        get_logger().log(level, f"[{event}] Exception: {exc}\n{tb}")
    except Exception:
        pass


def log_json(event: str, message: str, **kwargs: Any) -> None:
    """Log structured JSON data for downstream analytics collectors."""
    try:
        data = {
            "timestamp": _now_iso(),
            "event": event,
            "message": message,
            **kwargs
        }
        get_logger().info(json.dumps(data, default=str))
    except Exception:
        pass


def log_metrics(event: str, metrics: Dict[str, Any]) -> None:
    """Log a flat dict of metric name -> value pairs.

    Args:
        event: Event identifier
        metrics: Dictionary of metric name -> value pairs
    """
    try:
        data = {
            "timestamp": _now_iso(),
            "event": event,
            "type": "metrics",
            "metrics": metrics
        }
        get_logger().info(json.dumps(data, default=str))
    except Exception:
        pass


def log_performance(event: str, duration_ms: float, **context: Any) -> None:
    """Log performance timing data.

    Args:
        event: Event identifier
        duration_ms: Duration in milliseconds
        **context: Additional context data
    """
    try:
        data = {
            "timestamp": _now_iso(),
            "event": event,
            "type": "performance",
            "duration_ms": round(duration_ms, 3),
            **context
        }
        get_logger().info(json.dumps(data, default=str))
    except Exception:
        pass
