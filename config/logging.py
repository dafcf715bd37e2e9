"""
Structured Logging Configuration Module

Configures structlog on top of the standard library logging module. Every module logs through
``structlog.get_logger(__name__)``; this module decides how those events are rendered:

- ``LOG_FORMAT=json``: one JSON object per line (structlog ``JSONRenderer``), stdlib records from
  third-party libraries formatted with python-json-logger
- ``LOG_FORMAT=console``: structlog ``ConsoleRenderer`` for local development

Request context (method, path, endpoint, request id) is attached to events logged inside a Flask
request, and values of sensitive keys are masked before rendering.
"""

import logging
import sys
from typing import Any, Dict

from flask import g, has_request_context, request
import structlog
from pythonjsonlogger import jsonlogger
from structlog.types import EventDict, WrappedLogger

SENSITIVE_KEYS = (
    'password', 'secret', 'token', 'authorization', 'cookie', 'credential'
)


class LoggingConfigurationError(Exception):
    """Logging cannot be configured from the given settings."""
    pass


def add_request_context(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add Flask request context to log entries when available."""
    if has_request_context():
        event_dict.setdefault('method', request.method)
        event_dict.setdefault('path', request.path)
        event_dict.setdefault('endpoint', request.endpoint)
        request_id = g.get('request_id')
        if request_id:
            event_dict.setdefault('request_id', request_id)
    return event_dict


def filter_sensitive_data(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask values of sensitive keys, recursively."""
    def filter_dict(data: Dict[str, Any]) -> Dict[str, Any]:
        filtered = {}
        for key, value in data.items():
            if isinstance(key, str) and any(s in key.lower() for s in SENSITIVE_KEYS):
                filtered[key] = "***"
            elif isinstance(value, dict):
                filtered[key] = filter_dict(value)
            else:
                filtered[key] = value
        return filtered

    return filter_dict(event_dict)


def configure_logging(config: Any) -> None:
    """
    Configure stdlib logging and structlog from a configuration object.

    Args:
        config: Object with ``LOG_LEVEL`` and ``LOG_FORMAT`` attributes

    Raises:
        LoggingConfigurationError: When required attributes are missing or invalid
    """
    missing = [attr for attr in ('LOG_LEVEL', 'LOG_FORMAT') if not hasattr(config, attr)]
    if missing:
        raise LoggingConfigurationError(
            f"Missing required logging configuration: {', '.join(missing)}"
        )

    level = logging.getLevelName(str(config.LOG_LEVEL).upper())
    if not isinstance(level, int):
        raise LoggingConfigurationError(f"Invalid LOG_LEVEL '{config.LOG_LEVEL}'")
    json_output = str(config.LOG_FORMAT).lower() == 'json'

    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(jsonlogger.JsonFormatter('%(asctime)s %(name)s %(levelname)s %(message)s'))
    else:
        handler.setFormatter(logging.Formatter('%(message)s'))
    logging.basicConfig(level=level, handlers=[handler], force=True)

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        add_request_context,
        filter_sensitive_data,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
