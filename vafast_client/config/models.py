from pathlib import Path
from typing import Dict, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field

from vafast_client.config.yaml import safe_load_with_env

DEFAULT_CONFIG_FILE = 'vafast-client.yaml'


class LoggingConfig(BaseModel):
    """Logging configuration model."""

    level: str = Field(default='INFO', description='Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)')
    console_enabled: bool = Field(default=True, description='Enable console logging')
    file_enabled: bool = Field(default=False, description='Enable file logging')
    log_file_dir: Optional[str] = Field(default=None, description='Log directory (defaults to ./logs)')
    max_file_size: str = Field(default='10MB', description='Maximum log file size before rotation')
    backup_count: int = Field(default=4, description='Number of backup files to keep')


class SSESettings(BaseModel):
    """Default reconnection behaviour for SSE subscriptions."""

    reconnect_interval: float = Field(default=3.0, gt=0, description='Base reconnect interval in seconds')
    max_reconnects: int = Field(default=5, ge=0, description='Maximum consecutive reconnect attempts')
    max_backoff: float = Field(default=30.0, gt=0, description='Upper bound for a single backoff delay in seconds')
    respect_retry_hint: bool = Field(default=True, description='Let the server retry: field replace the base interval')


class RetrySettings(BaseModel):
    """Transport-level retry policy for regular requests."""

    count: int = Field(default=3, ge=0)
    delay: float = Field(default=1.0, ge=0)
    backoff: bool = Field(default=True)
    on: Tuple[int, ...] = Field(default=(408, 429, 500, 502, 503, 504))


class ClientSettings(BaseModel):
    """Client configuration model with validation."""

    model_config = ConfigDict(extra='allow')

    version: str = Field(default='1', description='Config version')
    base_url: str = Field(default='', description='Base URL prepended to every request path')
    timeout: float = Field(default=30.0, gt=0, description='Default per-call timeout in seconds')
    headers: Dict[str, str] = Field(default_factory=dict, description='Default headers sent with every request')
    sse: SSESettings = Field(default_factory=SSESettings)
    retry: Optional[RetrySettings] = Field(default=None)
    logging: LoggingConfig = Field(default_factory=LoggingConfig, description='Logging configuration')

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> 'ClientSettings':
        """Load settings from a YAML file.

        Tries an explicit config_path first, otherwise ./vafast-client.yaml.
        Missing files fall back to defaults.
        """
        path = config_path or DEFAULT_CONFIG_FILE

        data = {}
        try:
            with open(path, 'r') as f:
                data = safe_load_with_env(f) or {}
        except FileNotFoundError:
            pass
        except yaml.YAMLError as e:
            raise ValueError(f'Invalid YAML in config file {path}: {e}')
        except Exception as e:
            raise ValueError(f'Error reading config file {path}: {e}')

        return cls(**data)

    def save(self, config_path: str) -> None:
        """Save settings to a YAML file."""
        Path(config_path).parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, 'w') as f:
            yaml.dump(self.model_dump(mode='json'), f, default_flow_style=False, sort_keys=False, indent=2)
