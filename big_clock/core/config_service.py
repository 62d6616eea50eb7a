"""
Configuration Service - Plugin config management
Loads YAML config with environment variable overrides
"""
import os
import yaml
from typing import Any, Dict, Optional
from pathlib import Path

PACKAGED_CONFIG = Path(__file__).resolve().parent.parent / "config" / "default.yaml"


class ConfigService:
    """
    Centralized configuration management with environment overrides.

    Priority order:
    1. Environment variables (highest)
    2. YAML config file
    3. Default values (lowest)
    """

    _instance: Optional['ConfigService'] = None
    _config: Dict[str, Any] = {}

    def __new__(cls):
        """Singleton pattern for global config access"""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        """Initialize only once"""
        if not self._config:
            self.reload()

    def reload(self) -> None:
        """Load config from file and environment"""
        self._config = self._load_yaml_config()
        self._apply_env_overrides()

    def _config_paths(self) -> list:
        """Candidate config files, first match wins"""
        paths = [
            Path("/data/config.yaml"),  # Production path
            Path("config/default.yaml"),  # Development path
            PACKAGED_CONFIG,  # Shipped with the package
        ]
        if env_path := os.environ.get('BIG_CLOCK_CONFIG'):
            paths.insert(0, Path(env_path))
        return paths

    def _load_yaml_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file, layered over the defaults"""
        config = self._get_defaults()

        for config_path in self._config_paths():
            if config_path.exists():
                try:
                    with open(config_path, 'r') as f:
                        loaded = yaml.safe_load(f) or {}
                    self._merge(config, loaded)
                    return config
                except Exception as e:
                    print(f"Warning: Failed to load {config_path}: {e}")

        return config

    def _merge(self, target: Dict[str, Any], source: Dict[str, Any]) -> None:
        """Recursively merge source into target"""
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                self._merge(target[key], value)
            else:
                target[key] = value

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides"""
        if env_level := os.environ.get('LOG_LEVEL'):
            self._config.setdefault('logging', {})
            self._config['logging']['level'] = env_level

        # Timezone
        if env_tz := os.environ.get('TIMEZONE'):
            self._config['timezone'] = env_tz

        # Scheduler
        if env_policy := os.environ.get('BLINK_POLICY'):
            self._config.setdefault('scheduler', {})
            self._config['scheduler']['blink_policy'] = env_policy

        if env_delay := os.environ.get('SUPERVISOR_DELAY'):
            self._config.setdefault('scheduler', {})
            self._config['scheduler']['supervisor_delay'] = float(env_delay)

        if env_grace := os.environ.get('STOP_GRACE'):
            self._config.setdefault('scheduler', {})
            self._config['scheduler']['stop_grace'] = float(env_grace)

        # Rendering
        if env_format := os.environ.get('RENDER_FORMAT'):
            self._config.setdefault('render', {})
            self._config['render']['format'] = env_format.lower()

    def _get_defaults(self) -> Dict[str, Any]:
        """Return default configuration"""
        return {
            'timezone': '',
            'scheduler': {
                'blink_policy': 'sub-second',
                'supervisor_delay': 2.0,
                'stop_grace': 0.0,
                'refresh_settings': False,
            },
            'lifecycle': {
                'followup_delay': 0.05,
            },
            'render': {
                'format': 'png',
            },
            'streamdeck': {
                'host': '127.0.0.1',
                'action_uuid': 'com.github.dipsylala.big-clock.time-component',
            },
            'logging': {
                'level': 'INFO',
            }
        }

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get config value using dot notation
        Example: config.get('scheduler.blink_policy')
        """
        keys = key.split('.')
        value = self._config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default

        return value

    def get_all(self) -> Dict[str, Any]:
        """Get entire configuration dict"""
        return self._config.copy()

    def set(self, key: str, value: Any) -> None:
        """
        Set config value using dot notation
        Example: config.set('render.format', 'svg')
        """
        keys = key.split('.')
        target = self._config

        for k in keys[:-1]:
            target = target.setdefault(k, {})

        target[keys[-1]] = value


# Global instance
config = ConfigService()
