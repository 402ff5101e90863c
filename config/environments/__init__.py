"""
Preset configurations for the development and production deployments
"""

import os
from config.app_config import AppConfig


def get_environment_config() -> AppConfig:
    """
    Configuration preset selected by APP_ENV

    Unknown environments fall back to AppConfig.load().
    """
    env = os.getenv("APP_ENV", "development").lower()

    if env == "development":
        from .development import get_development_config
        config = get_development_config()
    elif env == "production":
        from .production import get_production_config
        config = get_production_config()
    else:
        return AppConfig.load()

    if os.getenv("PYTEST_CURRENT_TEST") is not None:
        config.logging.enable_file_logging = False
    return config
