import copy
import json
import os
from pathlib import Path

import toml

from print_bridge.config.defaults import DEFAULT_CONFIG

ENV_CONFIG_PATH = 'PRINT_BRIDGE_CONFIG'


def default_config_path() -> Path:
    return Path.home() / '.print_bridge' / 'config.toml'


class ConfigManager:
    """Manages configuration loading and access."""

    def __init__(self, config_file: str = None):
        """
        Initialize ConfigManager.

        Args:
            config_file: Path to config file. If None, uses default locations.
        """
        if config_file is None:
            env_path = os.environ.get(ENV_CONFIG_PATH)
            if env_path:
                config_file = env_path
            # Then check user home directory
            elif default_config_path().exists():
                config_file = str(default_config_path())
            # Finally check current directory
            elif Path('config.toml').exists():
                config_file = 'config.toml'
            else:
                config_file = None

        self.config_file = Path(config_file) if config_file else None
        self.config = {}
        if self.config_file:
            self.load_config()

    def exists(self):
        """Check if config file exists."""
        return bool(self.config_file and self.config_file.exists())

    def load_config(self):
        """Load configuration from file."""
        if not self.config_file or not self.config_file.exists():
            return

        if self.config_file.suffix == '.toml':
            self.config = toml.load(self.config_file)
        elif self.config_file.suffix == '.json':
            with open(self.config_file, 'r') as f:
                self.config = json.load(f)

    def save_config(self):
        """Save configuration to file."""
        if not self.config_file:
            raise ValueError("No config file specified")

        self.config_file.parent.mkdir(parents=True, exist_ok=True)

        if self.config_file.suffix == '.toml':
            with open(self.config_file, 'w') as f:
                toml.dump(self.config, f)
        elif self.config_file.suffix == '.json':
            with open(self.config_file, 'w') as f:
                json.dump(self.config, f, indent=4)

    def get(self, key: str, default=None):
        """
        Get configuration value using dot notation.

        Values missing from the loaded file fall back to the built-in
        defaults, then to ``default``.

        Args:
            key: Configuration key (e.g., 'server.port')
            default: Default value if key not found anywhere

        Returns:
            Configuration value or default
        """
        value = _lookup(self.config, key)
        if value is None:
            value = _lookup(DEFAULT_CONFIG, key)
        return default if value is None else value

    def set(self, key: str, value, save: bool = True):
        """
        Set configuration value using dot notation.

        Args:
            key: Configuration key (e.g., 'server.port')
            value: Value to set
            save: Write the file afterwards
        """
        keys = key.split('.')
        config = self.config

        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value
        if save:
            self.save_config()

    def effective(self) -> dict:
        """Defaults overlaid with the loaded file, for display."""
        merged = copy.deepcopy(DEFAULT_CONFIG)
        for section, values in self.config.items():
            if isinstance(values, dict) and isinstance(merged.get(section), dict):
                merged[section].update(values)
            else:
                merged[section] = values
        return merged


def _lookup(config: dict, key: str):
    value = config
    for k in key.split('.'):
        if isinstance(value, dict):
            value = value.get(k)
            if value is None:
                return None
        else:
            return None
    return value
