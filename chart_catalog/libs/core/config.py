"""
Configuration Management

Handles loading and validating configuration files for the Chart Catalog library.
"""

import logging
from pathlib import Path
from typing import Dict, Any, Optional

try:
    import yaml
except ImportError:
    raise ImportError("PyYAML is required. Install with: pip install PyYAML")

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class ConfigManager:
    """Manages configuration loading and validation"""

    # Configuration schema - defines expected structure and types
    CONFIG_SCHEMA = {
        'repository': {
            'type': dict,
            'required': True,
            'fields': {
                'name': {'type': str, 'required': True},
                'namespace': {'type': str, 'required': False},
                'url': {'type': str, 'required': True},
                'auth_header': {'type': str, 'required': False},
                'user_agent': {'type': str, 'required': False},
                'cache_dir': {'type': str, 'required': False},
                'timeout': {'type': (int, float), 'required': False},
            }
        },
        'cache': {
            'type': dict,
            'required': False,
            'fields': {
                'enabled': {'type': bool, 'required': False},
                'key': {'type': str, 'required': False},
                'ttl': {'type': int, 'required': False},
                'max_items': {'type': int, 'required': False},
            }
        },
        'database': {
            'type': dict,
            'required': False,
            'fields': {
                'url': {'type': str, 'required': True},
                'global_packaging_namespace': {'type': str, 'required': False},
            }
        },
        'sync': {
            'type': dict,
            'required': False,
            'fields': {
                'workers': {'type': int, 'required': False},
                'fetch_latest_only': {'type': bool, 'required': False},
            }
        },
        'summary': {
            'type': dict,
            'required': False,
            'fields': {
                'major': {'type': int, 'required': False},
                'minor': {'type': int, 'required': False},
                'patch': {'type': int, 'required': False},
            }
        },
        'global': {
            'type': dict,
            'required': False,
            'fields': {
                'skip_tls': {'type': bool, 'required': False},
                'debug': {'type': bool, 'required': False},
                'log_level': {'type': str, 'required': False,
                              'choices': ['DEBUG', 'INFO', 'WARNING', 'ERROR']},
            }
        },
    }

    def __init__(self):
        """Initialize configuration manager"""
        self.config_data = {}
        self.config_file_path = None

    def load_config(self, config_path: str) -> Dict[str, Any]:
        """
        Load configuration from YAML file

        Args:
            config_path: Path to configuration file

        Returns:
            Dict containing configuration data

        Raises:
            ConfigurationError: If configuration file cannot be loaded or is invalid
        """
        config_file = Path(config_path)

        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        if not config_file.is_file():
            raise ConfigurationError(f"Configuration path is not a file: {config_path}")

        try:
            with open(config_file, 'r') as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file {config_path}: {e}")
        except OSError as e:
            raise ConfigurationError(f"Failed to load configuration from {config_path}: {e}")

        self.load_config_dict(data)
        self.config_file_path = config_path
        logger.info(f"Successfully loaded configuration from {config_path}")
        return self.config_data

    def load_config_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Load configuration from an already parsed mapping

        Args:
            data: Configuration mapping

        Returns:
            Dict containing configuration data

        Raises:
            ConfigurationError: If configuration is invalid
        """
        self.config_data = data
        self._validate_config()
        return self.config_data

    def _validate_config(self) -> None:
        """
        Validate configuration structure and values

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if not isinstance(self.config_data, dict):
            raise ConfigurationError("Configuration must be a dictionary")

        self._validate_against_schema(self.config_data, self.CONFIG_SCHEMA, "")

        if self.get_value('cache.enabled', False) and not self.get_value('cache.key'):
            raise ConfigurationError("cache.key is required when cache.enabled is true")

    def _validate_against_schema(self, data: Dict[str, Any], schema: Dict[str, Any], path: str = "") -> None:
        """
        Validate data against schema definition

        Args:
            data: Data to validate
            schema: Schema definition
            path: Current path for error reporting

        Raises:
            ConfigurationError: If data doesn't match schema
        """
        for key, field_schema in schema.items():
            current_path = f"{path}.{key}" if path else key

            if key in data:
                value = data[key]

                # Skip None values for optional fields
                if value is None and not field_schema.get('required', False):
                    continue

                expected_type = field_schema['type']
                # bool is an int subclass, never accept it for numeric fields
                if not isinstance(value, expected_type) or (
                    isinstance(value, bool) and expected_type is not bool
                ):
                    if isinstance(expected_type, tuple):
                        type_name = ' or '.join(t.__name__ for t in expected_type)
                    else:
                        type_name = expected_type.__name__
                    raise ConfigurationError(f"{current_path} must be a {type_name}")

                if 'choices' in field_schema:
                    if value not in field_schema['choices']:
                        choices_str = ', '.join(f"'{c}'" for c in field_schema['choices'])
                        raise ConfigurationError(f"{current_path} must be one of: {choices_str}")

                if expected_type == dict and 'fields' in field_schema:
                    self._validate_against_schema(value, field_schema['fields'], current_path)

            elif field_schema.get('required', False):
                raise ConfigurationError(f"Required field {current_path} is missing")

    def get_config(self) -> Dict[str, Any]:
        """
        Get current configuration data

        Returns:
            Dict containing configuration data
        """
        return self.config_data.copy()

    def get_section(self, section: str) -> Dict[str, Any]:
        """
        Get specific configuration section

        Args:
            section: Section name (e.g., 'repository', 'cache')

        Returns:
            Dict containing section data, empty dict if section doesn't exist
        """
        return self.config_data.get(section) or {}

    def get_value(self, key: str, default: Optional[Any] = None) -> Any:
        """
        Get configuration value by key

        Args:
            key: Configuration key (supports dot notation like 'cache.ttl')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key.split('.')
        value = self.config_data

        try:
            for k in keys:
                value = value[k]
        except (KeyError, TypeError):
            return default
        return default if value is None else value
