"""Configuration module for loading and managing application settings"""
import os
from typing import Dict, Any, Optional

from .lib.load_settings_conf import (
    load_settings_conf,
    validate_settings,
    SettingsError,
    DEFAULTS,
)

__all__ = ['get_settings', 'default_settings', 'SettingsError', 'DEFAULTS']

_settings: Optional[Dict[str, Any]] = None

def default_settings(**overrides: Any) -> Dict[str, Any]:
    """Build a typed settings dict from DEFAULTS without reading settings.conf.

    Args:
        **overrides: Raw values replacing individual defaults

    Returns:
        Validated settings dictionary
    """
    settings = dict(DEFAULTS)
    settings.update({key: str(value) if not isinstance(value, list) else ','.join(value)
                     for key, value in overrides.items()})
    return validate_settings(settings)

def get_settings(settings_path: Optional[str] = None) -> Dict[str, Any]:
    """Load settings.conf once and return the cached settings.

    Args:
        settings_path: Directory containing settings.conf. Defaults to the
            DSHOP_SETTINGS_DIR environment variable or the working directory.

    Raises:
        SettingsError: If settings.conf is missing or invalid
    """
    global _settings

    if _settings is None:
        path = settings_path or os.environ.get('DSHOP_SETTINGS_DIR', '.')
        try:
            _settings = load_settings_conf(path)
        except SettingsError as e:
            # Re-raise the error but provide more context
            raise SettingsError(
                f"Configuration Error\n"
                "=================\n\n"
                f"{str(e)}\n\n"
                "Please ensure settings.conf is properly configured.\n"
                "See settings.conf.example for the available settings."
            ) from e
    return _settings
