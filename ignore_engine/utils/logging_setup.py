"""
Logging configuration for ignore-engine.

Provides environment-aware logging that:
- Writes to stderr so stdout stays clean for command output
- Outputs JSON in Docker environments
- Provides human-readable output for local use
- Supports log rotation when a log file is requested
- Includes custom TRACE level for per-query debugging
"""

import sys
import logging
import json
import os
from datetime import datetime, timezone
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Optional, Any

# Define TRACE level (lower number = more detailed)
TRACE_LEVEL = 5
logging.addLevelName(TRACE_LEVEL, "TRACE")


def trace(self, message, *args, **kwargs):
    if self.isEnabledFor(TRACE_LEVEL):
        self._log(TRACE_LEVEL, message, args, **kwargs)


logging.Logger.trace = trace


def add_trace_to_logger():
    """Ensure trace method is available on all logger instances"""
    if not hasattr(logging.Logger, 'trace'):
        logging.Logger.trace = trace


class DockerFormatter(logging.Formatter):
    """JSON formatter optimized for container logs"""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON for container environments"""
        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'component': record.name,
            'message': record.getMessage(),
            'pid': os.getpid(),
        }

        # Add any extra fields
        if hasattr(record, 'extra'):
            log_data.update(record.extra)

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def _resolve_level(level_str: str) -> int:
    if level_str.upper() == 'TRACE':
        return TRACE_LEVEL
    return getattr(logging, level_str.upper(), logging.INFO)


def configure_logging(
    log_level: Optional[str] = None,
    log_file: Optional[str] = None,
    enable_rotation: bool = True,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
    quiet_libraries: bool = True,
) -> None:
    """
    Configure logging based on environment.

    Args:
        log_level: Override log level (defaults to IGNORE_ENGINE_LOG_LEVEL,
            then LOG_LEVEL, then WARNING)
        log_file: Optional path to a log file; stderr is always used
        enable_rotation: Enable log rotation for file handler
        max_bytes: Maximum size of log file before rotation
        backup_count: Number of backup files to keep
        quiet_libraries: Suppress verbose third-party library logs
    """
    add_trace_to_logger()
    level_str = (
        log_level
        or os.environ.get('IGNORE_ENGINE_LOG_LEVEL')
        or os.environ.get('LOG_LEVEL', 'WARNING')
    )
    level = _resolve_level(level_str)

    root_logger = logging.getLogger()
    root_logger.handlers = []

    in_docker = (
        os.path.exists('/.dockerenv') or
        os.environ.get('DOCKER_CONTAINER', '').lower() == 'true'
    )

    handler = logging.StreamHandler(sys.stderr)
    if in_docker:
        handler.setFormatter(DockerFormatter())
    else:
        handler.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))
    root_logger.addHandler(handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        if enable_rotation:
            file_handler = RotatingFileHandler(
                str(log_path),
                maxBytes=max_bytes,
                backupCount=backup_count
            )
        else:
            file_handler = logging.FileHandler(str(log_path))
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
        root_logger.addHandler(file_handler)

    root_logger.setLevel(level)

    if quiet_libraries:
        for lib in ('watchdog', 'watchdog.observers', 'inotify_buffer'):
            logging.getLogger(lib).setLevel(logging.WARNING)

    logger = logging.getLogger('ignore-engine')
    logger.debug(f"Logging configured - Level: {level_str.upper()}, Docker: {in_docker}")


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Logger instance with the trace method available
    """
    add_trace_to_logger()
    return logging.getLogger(name)


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    **context: Any
) -> None:
    """
    Log a message with additional context fields.

    Args:
        logger: Logger instance
        level: Log level (e.g., logging.INFO)
        message: Log message
        **context: Additional fields to include in structured logs
    """
    extra = {'extra': context} if context else {}
    logger.log(level, message, extra=extra)
