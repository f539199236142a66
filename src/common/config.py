"""
Configuration management for the signage layout console.
Merges built-in defaults with an optional YAML file and environment overrides.
"""

import copy
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


# Default configuration values
DEFAULT_CONFIG: Dict[str, Any] = {
    'api': {
        'base_url': 'http://localhost:8005',
        'timeout': 30,
        'token': None,
    },
    'polling': {
        'progress_interval': 2,
        'listing_interval': 30,
        'max_workers': 8,
        'device_timeout': 10,
        'link_page_limit': 1000,
    },
    'events': {
        'enabled': False,
        'endpoint': 'tcp://127.0.0.1:5570',
    },
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into base (base is modified)."""
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


class ConsoleConfig:
    """Manages console configuration from YAML files."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            config_path: Path to a YAML config file. If None, CONSOLE_CONFIG
                is consulted; with neither, only defaults and env apply.
        """
        if config_path is None:
            config_path = os.environ.get('CONSOLE_CONFIG')

        self.config_path = Path(config_path) if config_path else None
        self._config: Dict[str, Any] = copy.deepcopy(DEFAULT_CONFIG)
        self.load()

    def load(self) -> None:
        """Load configuration from the YAML file, if one was given."""
        if self.config_path is not None:
            if not self.config_path.exists():
                raise FileNotFoundError(f"Config file not found: {self.config_path}")

            with open(self.config_path, 'r') as f:
                file_config = yaml.safe_load(f) or {}

            if not isinstance(file_config, dict):
                raise ValueError(f"Config file must contain a mapping: {self.config_path}")

            _deep_merge(self._config, file_config)

        # Apply environment variable overrides
        self._apply_env_overrides()

    def _apply_env_overrides(self) -> None:
        """Override config values from environment variables."""
        if 'CONSOLE_API_BASE_URL' in os.environ:
            self._config['api']['base_url'] = os.environ['CONSOLE_API_BASE_URL']

        if 'CONSOLE_API_TOKEN' in os.environ:
            self._config['api']['token'] = os.environ['CONSOLE_API_TOKEN']

        if 'CONSOLE_EVENTS_ENDPOINT' in os.environ:
            self._config['events']['endpoint'] = os.environ['CONSOLE_EVENTS_ENDPOINT']

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key: Configuration key (e.g., 'api.base_url')
            default: Default value if key not found

        Returns:
            Configuration value or default

        Example:
            >>> config = ConsoleConfig()
            >>> config.get('polling.listing_interval')
            30
        """
        keys = key.split('.')
        value = self._config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any) -> None:
        """
        Set configuration value using dot notation.

        Args:
            key: Configuration key (e.g., 'api.token')
            value: Value to set
        """
        keys = key.split('.')
        config = self._config

        # Navigate to the parent key
        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value

    def save(self, path: Optional[str] = None) -> None:
        """
        Save configuration to a YAML file.

        Args:
            path: Path to save to. If None, uses original config_path
        """
        save_path = Path(path) if path else self.config_path
        if save_path is None:
            raise ValueError("No path given and no config file was loaded")

        save_path.parent.mkdir(parents=True, exist_ok=True)

        with open(save_path, 'w') as f:
            yaml.dump(self._config, f, default_flow_style=False, indent=2)

    @property
    def api_base_url(self) -> str:
        """Get collaborator API base URL."""
        return self.get('api.base_url', DEFAULT_CONFIG['api']['base_url'])

    @property
    def api_timeout(self) -> int:
        """Get request timeout in seconds."""
        return int(self.get('api.timeout', DEFAULT_CONFIG['api']['timeout']))

    @property
    def api_token(self) -> Optional[str]:
        """Get bearer token, if any."""
        return self.get('api.token')

    @property
    def progress_interval(self) -> float:
        """Get download progress polling interval in seconds."""
        return float(self.get('polling.progress_interval', DEFAULT_CONFIG['polling']['progress_interval']))

    @property
    def listing_interval(self) -> float:
        """Get links/online/layout polling interval in seconds."""
        return float(self.get('polling.listing_interval', DEFAULT_CONFIG['polling']['listing_interval']))

    @property
    def max_workers(self) -> int:
        """Get size of the per-device request pool."""
        return int(self.get('polling.max_workers', DEFAULT_CONFIG['polling']['max_workers']))

    @property
    def device_timeout(self) -> float:
        """Get how long a poll cycle waits for per-device answers."""
        return float(self.get('polling.device_timeout', DEFAULT_CONFIG['polling']['device_timeout']))

    @property
    def link_page_limit(self) -> int:
        """Get page size for the link listing."""
        return int(self.get('polling.link_page_limit', DEFAULT_CONFIG['polling']['link_page_limit']))

    @property
    def events_enabled(self) -> bool:
        """Check whether layout change events are published."""
        return bool(self.get('events.enabled', False))

    @property
    def events_endpoint(self) -> str:
        """Get ZeroMQ endpoint for layout change events."""
        return self.get('events.endpoint', DEFAULT_CONFIG['events']['endpoint'])

    def __repr__(self) -> str:
        """String representation."""
        return f"ConsoleConfig(path={self.config_path})"


# Global config instance (can be imported by other modules)
_global_config: Optional[ConsoleConfig] = None


def get_config(config_path: Optional[str] = None) -> ConsoleConfig:
    """
    Get the global configuration instance.

    Args:
        config_path: Path to config file (only used on first call)

    Returns:
        ConsoleConfig instance
    """
    global _global_config

    if _global_config is None:
        _global_config = ConsoleConfig(config_path)

    return _global_config


def reset_config() -> None:
    """Reset the global config instance."""
    global _global_config
    _global_config = None
