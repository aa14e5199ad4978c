"""
Structured JSON logging configuration.
"""

import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

# Top-level packages whose module loggers share the configured handlers
APP_LOGGERS = ('portal', 'core', 'config')


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record):
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
            log_entry['exception'] = self.formatException(record.exc_info)

        for attr in ('request_id', 'user', 'endpoint', 'method', 'status_code',
                     'duration_ms', 'remote_addr', 'error_id'):
            if hasattr(record, attr):
                log_entry[attr] = getattr(record, attr)

        return json.dumps(log_entry)


def configure_logging(app=None, settings=None):
    """Configure structured JSON logging for production.

    Args:
        app: Optional Flask app whose logger will be updated.
        settings: AppSettings providing log_level, log_format and log_file.

    Returns:
        List of handlers attached to the application loggers.
    """
    log_level = (settings.log_level if settings else 'INFO').upper()
    log_format = settings.log_format if settings else 'json'
    log_file = settings.log_file if settings else ''

    handlers = []

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG)

    if log_format == 'json':
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
    handlers.append(console_handler)

    # File handler (if configured)
    if log_file:
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter())
        handlers.append(file_handler)

    level = getattr(logging, log_level, logging.INFO)
    for name in APP_LOGGERS:
        logger = logging.getLogger(name)
        logger.setLevel(level)
        logger.handlers = list(handlers)

    # Sync Flask's logger
    if app is not None:
        app.logger.handlers = list(handlers)
        app.logger.setLevel(level)

    return handlers
