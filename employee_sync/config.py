"""
Configuration loading and management for Employee Number Sync.

This module handles loading configuration from YAML files and environment variables,
with validation and defaults, and turns the result into a typed settings object.
"""

import os
import yaml
import logging
from dataclasses import dataclass, field
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 200
MIN_PAGE_SIZE = 1
MAX_PAGE_SIZE = 1000
DEFAULT_SOURCE_ATTRIBUTE = 'employeeID'
DEFAULT_EXCLUDE_PATTERN = '*@corp.example.com*'


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing required fields."""
    pass


@dataclass
class SyncSettings:
    """
    Validated run settings.

    Attributes:
        org_url: Identity provider base URL, e.g. https://acme.okta.com
        api_token: Identity provider API token
        search_base: Directory search root for display name lookups
        source_attribute: Directory attribute copied into employeeNumber
        exclude_email_pattern: Case-insensitive glob; matching emails are skipped
        page_size: Users requested per page (1-1000)
        dry_run: Look up values but do not write them back
    """
    org_url: str
    api_token: str
    search_base: str
    source_attribute: str = DEFAULT_SOURCE_ATTRIBUTE
    exclude_email_pattern: str = DEFAULT_EXCLUDE_PATTERN
    page_size: int = DEFAULT_PAGE_SIZE
    dry_run: bool = False
    ldap_config: Dict[str, Any] = field(default_factory=dict)
    idp_config: Dict[str, Any] = field(default_factory=dict)
    logging_config: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        errors = []
        if not self.org_url:
            errors.append("Identity provider org URL is required")
        if not self.api_token:
            errors.append("Identity provider API token is required")
        if not self.search_base:
            errors.append("Directory search base is required")
        if not self.source_attribute:
            errors.append("Directory source attribute must not be empty")

        try:
            self.page_size = int(self.page_size)
        except (TypeError, ValueError):
            errors.append(f"Page size must be an integer, got {self.page_size!r}")
        else:
            if not MIN_PAGE_SIZE <= self.page_size <= MAX_PAGE_SIZE:
                errors.append(f"Page size must be between {MIN_PAGE_SIZE} and "
                              f"{MAX_PAGE_SIZE}, got {self.page_size}")

        if errors:
            raise ConfigurationError("Invalid settings:\n" + "\n".join(f"  - {error}" for error in errors))

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'SyncSettings':
        """Build settings from a loaded configuration dictionary."""
        idp_config = config.get('idp') or {}
        ldap_config = config.get('ldap') or {}
        sync_config = config.get('sync') or {}

        return cls(
            org_url=idp_config.get('org_url', ''),
            api_token=idp_config.get('api_token', ''),
            search_base=ldap_config.get('search_base', ''),
            source_attribute=ldap_config.get('source_attribute', DEFAULT_SOURCE_ATTRIBUTE),
            exclude_email_pattern=sync_config.get('exclude_email_pattern', DEFAULT_EXCLUDE_PATTERN),
            page_size=idp_config.get('page_size', DEFAULT_PAGE_SIZE),
            dry_run=bool(sync_config.get('dry_run', False)),
            ldap_config=ldap_config,
            idp_config=idp_config,
            logging_config=config.get('logging') or {}
        )


class ConfigLoader:
    """Handles loading and validation of application configuration."""

    # Environment variable mappings; these win over values from the file
    ENV_OVERRIDES = {
        'idp.org_url': 'OKTA_ORG_URL',
        'idp.org': 'OKTA_ORG',
        'idp.api_token': 'OKTA_API_TOKEN',
        'idp.page_size': 'OKTA_PAGE_SIZE',
        'ldap.server_url': 'LDAP_SERVER_URL',
        'ldap.bind_dn': 'LDAP_BIND_DN',
        'ldap.bind_password': 'LDAP_BIND_PASSWORD',
        'ldap.search_base': 'LDAP_SEARCH_BASE',
        'ldap.source_attribute': 'LDAP_SOURCE_ATTRIBUTE',
        'sync.exclude_email_pattern': 'EXCLUDE_EMAIL_PATTERN',
    }

    def __init__(self, config_path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None):
        """
        Initialize config loader.

        Args:
            config_path: Path to config file. If None, uses CONFIG_PATH env var or 'config.yaml'
            overrides: Dotted-key overrides applied after the environment; None values are ignored
        """
        self.overrides = overrides or {}
        self.explicit_path = bool(config_path or os.getenv('CONFIG_PATH'))
        self.config_path = config_path or os.getenv('CONFIG_PATH', 'config.yaml')
        self.config = {}

    def load(self) -> Dict[str, Any]:
        """
        Load configuration from file and apply environment overrides.

        A missing file is only an error when the path was given explicitly;
        otherwise the configuration is built from environment variables.

        Returns:
            Parsed and validated configuration dictionary

        Raises:
            ConfigurationError: If config file not found or validation fails
        """
        try:
            with open(self.config_path, 'r') as f:
                self.config = yaml.safe_load(f) or {}
        except FileNotFoundError:
            if self.explicit_path:
                raise ConfigurationError(f"Configuration file not found: {self.config_path}")
            logger.debug(f"No configuration file at {self.config_path}, using environment only")
            self.config = {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")

        if not isinstance(self.config, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {self.config_path}")

        # Apply environment variable overrides, then explicit overrides
        self._apply_env_overrides()
        for key_path, value in self.overrides.items():
            if value is not None:
                self._set_nested_value(self.config, key_path, value)

        # Derive the org URL from a bare org name
        self._resolve_org_url()

        # Validate configuration
        self._validate()

        # Apply defaults
        self._apply_defaults()

        logger.info(f"Configuration loaded successfully (file: {self.config_path})")
        return self.config

    def _apply_env_overrides(self):
        """Apply environment variable overrides."""
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
            if current.get(key) is None:
                current[key] = {}
            current = current[key]
        current[keys[-1]] = value

    def _resolve_org_url(self):
        """Build idp.org_url from idp.org when only the org name is given."""
        idp_config = self.config.get('idp') or {}
        if idp_config.get('org_url') or not idp_config.get('org'):
            return
        org = str(idp_config['org']).strip()
        if '.' not in org:
            org = f"{org}.okta.com"
        idp_config['org_url'] = f"https://{org}"
        self.config['idp'] = idp_config

    def _validate(self):
        """Validate required configuration fields."""
        errors = []

        # Validate identity provider configuration
        idp_config = self.config.get('idp') or {}
        for field_name in ['org_url', 'api_token']:
            if not idp_config.get(field_name):
                errors.append(f"Missing required identity provider field: {field_name}")

        org_url = idp_config.get('org_url', '')
        if org_url and not str(org_url).lower().startswith(('https://', 'http://')):
            errors.append(f"Identity provider org_url must be an http(s) URL: {org_url}")

        page_size = idp_config.get('page_size')
        if page_size is not None:
            try:
                page_size = int(page_size)
            except (TypeError, ValueError):
                errors.append(f"idp.page_size must be an integer, got {page_size!r}")
            else:
                if not MIN_PAGE_SIZE <= page_size <= MAX_PAGE_SIZE:
                    errors.append(f"idp.page_size must be between {MIN_PAGE_SIZE} and {MAX_PAGE_SIZE}")

        auth_scheme = str(idp_config.get('auth_scheme', 'SSWS')).upper()
        if auth_scheme not in ('SSWS', 'BEARER'):
            errors.append(f"Unsupported identity provider auth_scheme: {auth_scheme}")

        # Validate LDAP configuration
        ldap_config = self.config.get('ldap') or {}
        required_ldap_fields = ['server_url', 'bind_dn', 'bind_password', 'search_base']
        for field_name in required_ldap_fields:
            if not ldap_config.get(field_name):
                errors.append(f"Missing required LDAP field: {field_name}")

        if errors:
            raise ConfigurationError("Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors))

    def _apply_defaults(self):
        """Apply default values for optional configuration fields."""
        idp_defaults = {
            'auth_scheme': 'SSWS',
            'page_size': DEFAULT_PAGE_SIZE,
            'verify_ssl': True,
            'timeout': 30
        }
        idp_config = self.config['idp'] = self.config.get('idp') or {}
        for key, value in idp_defaults.items():
            idp_config.setdefault(key, value)
        idp_config['page_size'] = int(idp_config['page_size'])

        ldap_defaults = {
            'source_attribute': DEFAULT_SOURCE_ATTRIBUTE,
            'user_filter': '(objectClass=user)'
        }
        ldap_config = self.config['ldap'] = self.config.get('ldap') or {}
        for key, value in ldap_defaults.items():
            ldap_config.setdefault(key, value)

        sync_defaults = {
            'exclude_email_pattern': DEFAULT_EXCLUDE_PATTERN,
            'dry_run': False
        }
        sync_config = self.config['sync'] = self.config.get('sync') or {}
        for key, value in sync_defaults.items():
            sync_config.setdefault(key, value)

        # Logging defaults
        logging_defaults = {
            'level': 'INFO',
            'log_dir': 'logs',
            'rotation': 'daily',
            'retention_days': 7,
            'console_output': True,
            'console_level': 'INFO'
        }
        logging_config = self.config['logging'] = self.config.get('logging') or {}
        for key, value in logging_defaults.items():
            logging_config.setdefault(key, value)


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


def load_settings(config_path: Optional[str] = None,
                  overrides: Optional[Dict[str, Any]] = None) -> SyncSettings:
    """
    Load configuration and build validated settings.

    Args:
        config_path: Path to config file
        overrides: Dotted-key overrides (e.g. from the command line); None values are ignored

    Returns:
        SyncSettings instance
    """
    return SyncSettings.from_config(ConfigLoader(config_path, overrides).load())
