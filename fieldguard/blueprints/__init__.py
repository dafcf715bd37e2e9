"""HTTP blueprints of the fieldguard service."""

from .api import create_api_blueprint

__all__ = ['create_api_blueprint']
