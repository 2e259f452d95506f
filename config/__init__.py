"""Configuration module for loading and managing application settings"""
from typing import Dict, Any, Optional
from .lib.load_settings_conf import load_settings_conf, SettingsError, DEFAULTS

__all__ = ['get_settings', 'load_settings_conf', 'SettingsError', 'DEFAULTS']

_settings: Optional[Dict[str, Any]] = None

def get_settings(settings_path: str = ".", reload: bool = False) -> Dict[str, Any]:
    """Return the loaded settings, reading settings.conf on first use.

    Args:
        settings_path: Directory containing settings.conf
        reload: Force re-reading the file

    Raises:
        SettingsError: If settings.conf is invalid
    """
    global _settings

    if _settings is None or reload:
        try:
            _settings = load_settings_conf(settings_path)
        except SettingsError as e:
            # Re-raise the error but provide more context
            raise SettingsError(
                f"Configuration Error\n"
                "=================\n\n"
                f"{str(e)}\n\n"
                "Please ensure settings.conf is properly configured.\n"
                "Run `python -m config` to write an example file."
            ) from e
    return _settings
