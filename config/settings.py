"""
Environment-specific configuration for the fieldguard Flask service.

Environment variables are loaded with python-dotenv (a ``.env`` file never overrides variables
already set in the process environment) and read through ``EnvironmentManager`` typed getters.
``get_config`` selects the configuration class from ``FLASK_ENV``.

Usage Example:
    from config.settings import get_config

    config = get_config('testing')
    app.config.from_object(config)
"""

import logging
import os
from typing import Dict, Optional, Type

from dotenv import find_dotenv, load_dotenv

logger = logging.getLogger(__name__)

LOG_LEVELS = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}
TRUE_VALUES = {'1', 'true', 'yes', 'on'}
FALSE_VALUES = {'0', 'false', 'no', 'off'}


class SettingsError(Exception):
    """Invalid or unknown configuration."""
    pass


class EnvironmentManager:
    """
    Environment variable access with python-dotenv loading and typed conversion.

    Args:
        env_file: Optional path to a .env file, auto-discovered when omitted
    """

    def __init__(self, env_file: Optional[str] = None):
        self.env_file = env_file if env_file is not None else find_dotenv(usecwd=True)
        if self.env_file:
            load_dotenv(self.env_file, override=False)
            logger.debug("Environment file loaded: %s", self.env_file)

    def get_str(self, key: str, default: Optional[str] = None) -> Optional[str]:
        value = os.getenv(key)
        return default if value is None or value == '' else value

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = os.getenv(key)
        if value is None or value == '':
            return default
        lowered = value.strip().lower()
        if lowered in TRUE_VALUES:
            return True
        if lowered in FALSE_VALUES:
            return False
        raise SettingsError(f"{key} must be a boolean, got '{value}'")

    def get_int(self, key: str, default: int = 0) -> int:
        value = os.getenv(key)
        if value is None or value == '':
            return default
        try:
            return int(value)
        except ValueError:
            raise SettingsError(f"{key} must be an integer, got '{value}'") from None


class BaseConfig:
    """Settings shared by every environment."""

    def __init__(self, env: Optional[EnvironmentManager] = None):
        env = env or EnvironmentManager()

        self.APP_NAME = env.get_str('APP_NAME', 'fieldguard')
        self.DEBUG = False
        self.TESTING = False

        # Request limits
        self.MAX_CONTENT_LENGTH = env.get_int('MAX_CONTENT_LENGTH', 1024 * 1024)

        # Logging
        self.LOG_LEVEL = env.get_str('LOG_LEVEL', 'INFO').upper()
        self.LOG_FORMAT = env.get_str('LOG_FORMAT', 'json').lower()

        # Validation layer
        self.VALIDATION_FREEZE_REGISTRY = env.get_bool('VALIDATION_FREEZE_REGISTRY', True)
        self.VALIDATION_LOG_FAILURES = env.get_bool('VALIDATION_LOG_FAILURES', True)

        # Monitoring
        self.METRICS_ENABLED = env.get_bool('METRICS_ENABLED', True)

        self._validate()

    def _validate(self) -> None:
        if self.LOG_LEVEL not in LOG_LEVELS:
            raise SettingsError(f"LOG_LEVEL '{self.LOG_LEVEL}' is not a logging level")
        if self.LOG_FORMAT not in ('json', 'console'):
            raise SettingsError(f"LOG_FORMAT must be 'json' or 'console', got '{self.LOG_FORMAT}'")
        if self.MAX_CONTENT_LENGTH <= 0:
            raise SettingsError("MAX_CONTENT_LENGTH must be positive")


class DevelopmentConfig(BaseConfig):
    """Local development: debug on, human-readable logs."""

    def __init__(self, env: Optional[EnvironmentManager] = None):
        env = env or EnvironmentManager()
        super().__init__(env)
        self.DEBUG = True
        self.LOG_LEVEL = env.get_str('LOG_LEVEL', 'DEBUG').upper()
        self.LOG_FORMAT = env.get_str('LOG_FORMAT', 'console').lower()
        self._validate()


class TestingConfig(BaseConfig):
    """Test runs: quiet console logs."""

    def __init__(self, env: Optional[EnvironmentManager] = None):
        env = env or EnvironmentManager()
        super().__init__(env)
        self.TESTING = True
        self.LOG_LEVEL = env.get_str('LOG_LEVEL', 'WARNING').upper()
        self.LOG_FORMAT = 'console'
        self._validate()


class ProductionConfig(BaseConfig):
    """Production: JSON logs, registry always frozen before serving."""

    def __init__(self, env: Optional[EnvironmentManager] = None):
        super().__init__(env)
        self.LOG_FORMAT = 'json'
        self.VALIDATION_FREEZE_REGISTRY = True


CONFIG_CLASSES: Dict[str, Type[BaseConfig]] = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
}


def get_config(config_name: Optional[str] = None) -> BaseConfig:
    """
    Build the configuration for an environment.

    Args:
        config_name: development, testing or production; ``FLASK_ENV`` when omitted

    Raises:
        SettingsError: For unknown environment names or invalid values
    """
    config_name = (config_name or os.getenv('FLASK_ENV', 'production')).lower()
    config_class = CONFIG_CLASSES.get(config_name)
    if config_class is None:
        raise SettingsError(
            f"Unknown configuration '{config_name}', expected one of {sorted(CONFIG_CLASSES)}"
        )
    return config_class()
