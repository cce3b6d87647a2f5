from typing import Optional

from vafast_client.config.models import ClientSettings, LoggingConfig, RetrySettings, SSESettings


class ConfigurationService:
    """Loads client settings without relying on global state."""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path
        self._settings = self._load_settings()

    def _load_settings(self) -> ClientSettings:
        return ClientSettings.load(self.config_path)

    def get_settings(self) -> ClientSettings:
        """Get the loaded settings."""
        return self._settings

    def reload_settings(self) -> ClientSettings:
        """Re-read settings from disk."""
        self._settings = self._load_settings()
        return self._settings


__all__ = ['ClientSettings', 'ConfigurationService', 'LoggingConfig', 'RetrySettings', 'SSESettings']
