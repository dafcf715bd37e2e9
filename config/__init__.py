"""
Configuration package: environment settings and logging setup.

Usage Example:
    from config import configure_logging, get_config

    config = get_config('production')
    configure_logging(config)
"""

from .logging import LoggingConfigurationError, configure_logging
from .settings import (
    BaseConfig, DevelopmentConfig, EnvironmentManager, ProductionConfig, SettingsError,
    TestingConfig, get_config
)

__all__ = [
    'BaseConfig', 'DevelopmentConfig', 'EnvironmentManager', 'LoggingConfigurationError',
    'ProductionConfig', 'SettingsError', 'TestingConfig', 'configure_logging', 'get_config',
]
