"""
Flask Application Factory

Builds the fieldguard service: configuration, structured logging, the validation stack (rule
registry, engine and request adapter), the API blueprint, error handlers, the request-id pipeline
and the Prometheus metrics endpoint.

The validation stack is wired in a fixed order so that every rule declaration is checked before
the first request:

1. ``create_registry()`` registers the built-in and custom rules
2. the API blueprint is built, resolving every request shape it declares
3. the registry is frozen (``VALIDATION_FREEZE_REGISTRY``)

Any ``ConfigurationError`` raised on the way aborts application creation.

Usage:
    # Development server
    export FLASK_ENV=development
    flask --app fieldguard.app:create_app run

    # Production WSGI deployment
    gunicorn "app:application"
"""

import time
import uuid
from typing import Any, Dict, Optional

import structlog
from flask import Flask, g, request
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from config.logging import configure_logging
from config.settings import BaseConfig, get_config
from fieldguard.blueprints.api import create_api_blueprint
from fieldguard.middleware.validation import RequestValidator
from fieldguard.utils.exceptions import register_error_handlers
from fieldguard.validation import ValidationEngine, create_registry

logger = structlog.get_logger(__name__)

EXTENSION_KEY = 'fieldguard'
REQUEST_ID_HEADER = 'X-Request-ID'


def create_app(
    config_name: Optional[str] = None,
    config: Optional[BaseConfig] = None,
    **config_overrides: Any
) -> Flask:
    """
    Create and configure the Flask application.

    Args:
        config_name: development, testing or production; ``FLASK_ENV`` when omitted
        config: Prebuilt configuration object, takes precedence over ``config_name``
        **config_overrides: Values applied on top of the configuration object

    Returns:
        Configured Flask application

    Raises:
        ConfigurationError: When a rule declaration is invalid
        SettingsError: When the configuration is invalid
    """
    config = config or get_config(config_name)
    for key, value in config_overrides.items():
        setattr(config, key, value)

    configure_logging(config)

    app = Flask(__name__.split('.')[0])
    app.config.from_object(config)

    try:
        _initialize_validation(app)
        register_error_handlers(app)
        _configure_request_pipeline(app)
        if app.config.get('METRICS_ENABLED', True):
            _register_metrics_endpoint(app)
    except Exception as e:
        logger.error(
            "Flask application creation failed",
            error=str(e),
            error_type=type(e).__name__,
            config_name=config_name
        )
        raise

    logger.info(
        "Flask application created",
        app_name=app.config['APP_NAME'],
        debug=app.config['DEBUG'],
        testing=app.config['TESTING'],
        registry_frozen=app.extensions[EXTENSION_KEY]['registry'].frozen
    )
    return app


def _initialize_validation(app: Flask) -> None:
    registry = create_registry()
    engine = ValidationEngine(registry)
    validator = RequestValidator(
        engine,
        log_failures=app.config.get('VALIDATION_LOG_FAILURES', True)
    )

    app.register_blueprint(create_api_blueprint(validator))

    if app.config.get('VALIDATION_FREEZE_REGISTRY', True):
        registry.freeze()

    app.extensions[EXTENSION_KEY] = {
        'registry': registry,
        'engine': engine,
        'validator': validator,
    }
    logger.info(
        "Validation layer initialized",
        rule_count=len(registry),
        registry_frozen=registry.frozen
    )


def _configure_request_pipeline(app: Flask) -> None:
    @app.before_request
    def assign_request_id():
        g.request_start_time = time.time()
        g.request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())

    @app.after_request
    def add_request_headers(response):
        response.headers[REQUEST_ID_HEADER] = g.get('request_id', 'unknown')
        started = g.get('request_start_time')
        if started is not None:
            duration_ms = round((time.time() - started) * 1000, 2)
            response.headers['X-Response-Time'] = str(duration_ms)
            logger.debug(
                "Request completed",
                status_code=response.status_code,
                duration_ms=duration_ms
            )
        return response


def _register_metrics_endpoint(app: Flask) -> None:
    @app.route('/metrics')
    def metrics_endpoint():
        """Prometheus metrics endpoint."""
        return generate_latest(), 200, {'Content-Type': CONTENT_TYPE_LATEST}


def get_validation_components(app: Flask) -> Dict[str, Any]:
    """Return the registry, engine and validator the application was built with."""
    return app.extensions[EXTENSION_KEY]
