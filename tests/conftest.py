"""
Global pytest configuration and fixtures.

Every test builds its own rule registry and engine, so registrations made by one test never
leak into another. The Flask application is created per test from ``TestingConfig`` with an
isolated environment (no ``.env`` discovery).
"""

import pytest
from flask import Flask
from flask.testing import FlaskClient

from config.settings import EnvironmentManager, TestingConfig
from fieldguard.app import create_app
from fieldguard.validation import ValidationEngine, create_registry
from tests.fixtures.shapes import VALID_PASSWORD, SignupForm

ENV_SETTINGS = (
    'APP_NAME', 'LOG_LEVEL', 'LOG_FORMAT', 'MAX_CONTENT_LENGTH', 'METRICS_ENABLED',
    'VALIDATION_FREEZE_REGISTRY', 'VALIDATION_LOG_FAILURES', 'FLASK_ENV',
)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every setting the configuration classes read from the environment."""
    for name in ENV_SETTINGS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def registry():
    """Unfrozen registry with the built-in and custom rules."""
    return create_registry()


@pytest.fixture
def engine(registry):
    return ValidationEngine(registry)


@pytest.fixture
def valid_signup() -> SignupForm:
    return SignupForm(
        username="jane_doe",
        email="jane@example.com",
        password=VALID_PASSWORD,
        confirm_password=VALID_PASSWORD,
    )


@pytest.fixture
def testing_config(clean_env) -> TestingConfig:
    return TestingConfig(EnvironmentManager(env_file=''))


@pytest.fixture
def app(testing_config) -> Flask:
    return create_app(config=testing_config)


@pytest.fixture
def client(app) -> FlaskClient:
    return app.test_client()
