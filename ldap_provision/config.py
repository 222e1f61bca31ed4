"""
Configuration loading and management for LDAP Provision.

This module handles loading configuration from YAML files and environment variables,
with validation and defaults.
"""

import os
import yaml
import logging
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing required fields."""
    pass


class ConfigLoader:
    """Handles loading and validation of application configuration."""

    # Environment variable overrides, applied before validation
    ENV_OVERRIDES = {
        'ldap.server_url': 'LDAP_SERVER_URL',
        'ldap.bind_dn': 'LDAP_BIND_DN',
        'ldap.bind_password': 'LDAP_BIND_PASSWORD',
        'ldap.base_path': 'LDAP_BASE_PATH',
    }

    REQUIRED_LDAP_FIELDS = ['server_url', 'bind_dn', 'bind_password', 'base_path']

    DEFAULTS = {
        'ldap': {
            'start_tls': False,
            'verify_ssl': True,
            'ca_cert_file': None,
            'connection_timeout': 10,
            'receive_timeout': 10,
        },
        'logging': {
            'level': 'INFO',
            'log_dir': 'logs',
            'rotation': 'daily',
            'retention_days': 7,
            'console_output': True,
            'console_level': 'WARNING',
        },
        'error_handling': {
            'max_retries': 3,
            'retry_wait_seconds': 5,
        },
    }

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize config loader.

        Args:
            config_path: Path to config file. If None, uses CONFIG_PATH env var or 'config.yaml'
        """
        self.config_path = config_path or os.getenv('CONFIG_PATH', 'config.yaml')
        self.config = {}

    def load(self) -> Dict[str, Any]:
        """
        Load configuration from file and apply environment overrides.

        Returns:
            Parsed and validated configuration dictionary

        Raises:
            ConfigurationError: If config file not found or validation fails
        """
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                self.config = yaml.safe_load(f) or {}
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {self.config_path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")

        if not isinstance(self.config, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {self.config_path}")

        self._apply_env_overrides()
        self._validate()
        self._apply_defaults()

        logger.info(f"Configuration loaded successfully from {self.config_path}")
        return self.config

    def _apply_env_overrides(self):
        for config_key, env_var in self.ENV_OVERRIDES.items():
            env_value = os.getenv(env_var)
            if env_value:
                self._set_nested_value(self.config, config_key, env_value)
                logger.debug(f"Applied environment override for {config_key}")

    def _set_nested_value(self, config: Dict, key_path: str, value: Any):
        """Set a nested configuration value using dot notation."""
        keys = key_path.split('.')
        current = config
        for key in keys[:-1]:
            if not isinstance(current.get(key), dict):
                current[key] = {}
            current = current[key]
        current[keys[-1]] = value

    def _validate(self):
        errors = []

        ldap_config = self.config.get('ldap')
        if not isinstance(ldap_config, dict):
            errors.append("Missing 'ldap' section")
            ldap_config = {}

        for field in self.REQUIRED_LDAP_FIELDS:
            if not ldap_config.get(field):
                errors.append(f"Missing required LDAP field: {field}")

        server_url = str(ldap_config.get('server_url', ''))
        if server_url and not server_url.lower().startswith(('ldap://', 'ldaps://')):
            errors.append(f"LDAP server_url must start with ldap:// or ldaps://: {server_url}")

        error_config = self.config.get('error_handling', {}) or {}
        for field in ('max_retries', 'retry_wait_seconds'):
            value = error_config.get(field)
            if value is not None and (not isinstance(value, (int, float)) or value < 0):
                errors.append(f"error_handling.{field} must be a non-negative number")

        if errors:
            raise ConfigurationError("Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors))

    def _apply_defaults(self):
        for section, defaults in self.DEFAULTS.items():
            section_config = self.config.get(section)
            if not isinstance(section_config, dict):
                section_config = self.config[section] = {}
            for key, value in defaults.items():
                section_config.setdefault(key, value)

        ldap_config = self.config['ldap']
        ldap_config.setdefault('use_ssl', str(ldap_config['server_url']).lower().startswith('ldaps://'))


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Convenience function to load configuration.

    Args:
        config_path: Path to config file

    Returns:
        Loaded configuration dictionary
    """
    loader = ConfigLoader(config_path)
    return loader.load()
