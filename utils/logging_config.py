"""
Structured JSON Logging Configuration for the E-Learning data layer

- Machine-readable JSON format for log analysis platforms
- Contextual information (store keys, seed paths, timings) for debugging
- Standard log levels with detailed messages
"""

import logging
import json
import sys
import os
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from pathlib import Path


class JSONFormatter(logging.Formatter):
    """
    Custom formatter that outputs structured JSON logs

    Every record carries its level, logger, location and any ``ctx_*``
    fields attached through ``extra`` or a ContextAdapter.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON"""

        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if record.exc_info:
            log_entry['exception'] = {
                'type': record.exc_info[0].__name__ if record.exc_info[0] else None,
                'message': str(record.exc_info[1]) if record.exc_info[1] else None,
                'traceback': self.formatException(record.exc_info)
            }

        for key, value in record.__dict__.items():
            if key.startswith('ctx_'):
                log_entry[key[4:]] = value

        return json.dumps(log_entry, default=str, ensure_ascii=False)


class ContextAdapter(logging.LoggerAdapter):
    """
    Logger adapter that adds contextual information to log records

    Used to tag everything a repository logs with its entity kind.
    """

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = kwargs.get('extra', {})

        for key, value in self.extra.items():
            extra[f'ctx_{key}'] = value

        kwargs['extra'] = extra
        return msg, kwargs


def setup_logging(
    log_level: str = 'INFO',
    log_file: Optional[str] = None,
    enable_console: bool = True,
    enable_json: bool = True
) -> None:
    """
    Setup structured logging configuration

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file (None = no file logging)
        enable_console: Whether to enable console logging
        enable_json: Whether to use JSON formatting
    """

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    if enable_json:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    # Console output goes to stderr so CLI output on stdout stays clean
    if enable_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    configure_application_loggers(level)


def configure_application_loggers(level: int = logging.INFO):
    """Configure application-specific loggers with appropriate levels"""

    app_loggers = [
        'api.client',
        'api.repository',
        'api.activity',
        'api.context',
        'storage.database',
        'storage.cache',
        'search.queries',
        'utils.backup_recovery',
        'cli.main'
    ]

    for logger_name in app_loggers:
        logging.getLogger(logger_name).setLevel(level)

    # External library loggers (reduce noise)
    external_loggers = {
        'requests': logging.WARNING,
        'urllib3': logging.WARNING,
    }

    for logger_name, external_level in external_loggers.items():
        logging.getLogger(logger_name).setLevel(external_level)


def get_contextual_logger(name: str, **context) -> ContextAdapter:
    """
    Get a logger with contextual information

    Example:
        logger = get_contextual_logger('api.repository', entity='users')
        logger.info("Snapshot persisted")
    """
    return ContextAdapter(logging.getLogger(name), context)


def log_seed_request(
    logger: logging.Logger,
    source: str,
    response_time: float,
    record_count: Optional[int] = None,
    status_code: Optional[int] = None,
    error: Optional[str] = None
) -> None:
    """
    Log a seed document retrieval with standardized fields

    Args:
        logger: Logger instance
        source: URL or file path of the seed document
        response_time: Retrieval time in seconds
        record_count: Number of records retrieved
        status_code: HTTP status code (None for local files)
        error: Error message if retrieval failed
    """

    log_data = {
        'extra': {
            'ctx_seed_source': source,
            'ctx_seed_status': status_code,
            'ctx_seed_response_time': response_time,
            'ctx_seed_success': error is None
        }
    }

    if record_count is not None:
        log_data['extra']['ctx_seed_record_count'] = record_count

    if error:
        log_data['extra']['ctx_seed_error'] = error
        logger.error(f"Seed retrieval failed: {source} - {error}", **log_data)
    else:
        logger.info(f"Seed retrieval successful: {source} ({record_count} records)", **log_data)


def log_store_operation(
    logger: logging.Logger,
    operation: str,
    key: str,
    size: int,
    duration: float,
    success: bool = True,
    error: Optional[str] = None
) -> None:
    """
    Log key-value store operations with performance metrics

    Args:
        logger: Logger instance
        operation: Store operation (GET, SET, REMOVE, CLEAR)
        key: Store key affected
        size: Serialized size in bytes
        duration: Operation duration in seconds
        success: Whether operation succeeded
        error: Error message if operation failed
    """

    log_data = {
        'extra': {
            'ctx_store_operation': operation,
            'ctx_store_key': key,
            'ctx_store_size': size,
            'ctx_store_duration': duration,
            'ctx_store_success': success
        }
    }

    if error:
        log_data['extra']['ctx_store_error'] = error

    if success:
        logger.debug(f"Store {operation} completed: {key} ({size} bytes, {duration:.3f}s)", **log_data)
    else:
        logger.error(f"Store {operation} failed: {key} - {error}", **log_data)


def init_from_environment():
    """Initialize logging configuration from environment variables"""

    log_level = os.getenv('LOG_LEVEL', 'INFO')
    log_file = os.getenv('LOG_FILE', './logs/elearning.log') or None
    enable_json = os.getenv('LOG_FORMAT', 'json').lower() == 'json'

    setup_logging(
        log_level=log_level,
        log_file=log_file,
        enable_console=True,
        enable_json=enable_json
    )
