"""Configuration loader with YAML/JSON support and environment variable substitution."""

import copy
import json
import os
import re
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import yaml
from dotenv import load_dotenv

# Files looked up in the working directory when no --config is given
CONFIG_CANDIDATES = [
    '.confluencerc',
    '.confluencerc.json',
    'confluence.config.json',
    'confluence.yaml',
    'config.yaml',
]

DEFAULT_CONFIG = {
    'confluence': {
        'base_url': None,
        'email': None,
        'api_token': None,
        'space_key': None,
    },
    'migration': {
        'root_page_id': None,
        'download_external_images': True,
    },
    'export': {
        'output_directory': './docs',
        'progress_bars': False,
    },
    'site': {
        'title': 'Documentation',
        'description': 'Migrated from Confluence',
    },
    'advanced': {
        'request_timeout': 30,
        'max_retries': 3,
        'retry_backoff_factor': 2.0,
    },
    'logging': {
        'level': None,
        'file': None,
    },
}

# Environment variable -> dotted config path
ENV_VARIABLES = {
    'CONFLUENCE_URL': 'confluence.base_url',
    'CONFLUENCE_EMAIL': 'confluence.email',
    'CONFLUENCE_API_TOKEN': 'confluence.api_token',
    'CONFLUENCE_SPACE_KEY': 'confluence.space_key',
    'CONFLUENCE_ROOT_PAGE_ID': 'migration.root_page_id',
    'CONFLUENCE_OUTPUT_DIR': 'export.output_directory',
}

# Flat keys of the JSON run-control files -> dotted config path
FLAT_KEYS = {
    'confluenceUrl': 'confluence.base_url',
    'email': 'confluence.email',
    'apiToken': 'confluence.api_token',
    'spaceKey': 'confluence.space_key',
    'rootPageId': 'migration.root_page_id',
    'downloadExternalImages': 'migration.download_external_images',
    'outputDir': 'export.output_directory',
    'siteTitle': 'site.title',
    'siteDescription': 'site.description',
}

SAMPLE_ENV = """# Confluence to VuePress Configuration
CONFLUENCE_URL=https://yoursite.atlassian.net
CONFLUENCE_ROOT_PAGE_ID=12345678
CONFLUENCE_SPACE_KEY=YOURSPACE
CONFLUENCE_EMAIL=your-email@example.com
CONFLUENCE_API_TOKEN=your-api-token
"""


class ConfigLoader:
    """Handles loading and validation of configuration files."""

    ENV_VAR_PATTERN = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*)\}')

    @classmethod
    def load(cls, config_path: str) -> Dict[str, Any]:
        """
        Load configuration from a YAML or JSON file with environment variable substitution.

        JSON files may use the flat run-control keys (``confluenceUrl``,
        ``rootPageId``, ...); they are mapped onto the nested layout.

        Args:
            config_path: Path to configuration file

        Returns:
            Parsed configuration dictionary

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If the file does not hold a mapping or is not valid JSON
            yaml.YAMLError: If YAML parsing fails
        """
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            if cls._is_json(config_path):
                try:
                    config_data = json.load(f)
                except json.JSONDecodeError as e:
                    raise ValueError(f"Invalid JSON in {config_path}: {e}")
            else:
                config_data = yaml.safe_load(f)

        if not isinstance(config_data, dict):
            raise ValueError("Configuration file must contain a dictionary")

        config_data = cls._expand_flat_keys(config_data)

        # Substitute environment variables recursively
        return cls._substitute_env_vars_recursive(config_data)

    @staticmethod
    def _is_json(config_path: str) -> bool:
        name = os.path.basename(config_path)
        return name.endswith('.json') or name == '.confluencerc'

    @classmethod
    def discover(cls, config_path: Optional[str] = None, search_dir: Optional[str] = None) -> Dict[str, Any]:
        """
        Load an explicit config file, or the first known config file found.

        Args:
            config_path: Explicit path; a missing file is an error
            search_dir: Directory searched for known file names (default: cwd)

        Returns:
            Configuration dictionary, empty when no file was found
        """
        if config_path:
            return cls.load(config_path)

        base = search_dir or os.getcwd()
        for candidate in CONFIG_CANDIDATES:
            path = os.path.join(base, candidate)
            if os.path.isfile(path):
                return cls.load(path)

        return {}

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> Dict[str, Any]:
        """
        Build a configuration from CONFLUENCE_* environment variables.

        A ``.env`` file is read first; variables already set win over it.
        """
        load_dotenv(dotenv_path, override=False)

        config: Dict[str, Any] = {}
        for variable, path in ENV_VARIABLES.items():
            value = os.getenv(variable)
            if value:
                set_nested(config, path, value)
        return config

    @classmethod
    def resolve(cls, args) -> Dict[str, Any]:
        """
        Assemble the effective configuration for a CLI run.

        Precedence: CLI arguments, then the config file, then the
        environment, then the defaults.
        """
        config = deep_merge(DEFAULT_CONFIG, cls.from_env())
        config = deep_merge(config, cls.discover(getattr(args, 'config', None)))
        return cls.merge_with_args(config, args)

    @classmethod
    def validate(cls, config: Dict[str, Any]) -> None:
        """
        Validate configuration for required fields and correct values.

        Args:
            config: Configuration dictionary to validate

        Raises:
            ValueError: If validation fails
        """
        cls._validate_required_field(config, 'confluence.base_url')
        cls._validate_required_field(config, 'migration.root_page_id')
        cls._validate_required_field(config, 'confluence.email')
        cls._validate_required_field(config, 'confluence.api_token')

        cls._validate_url(get_nested(config, 'confluence.base_url'), 'confluence.base_url')

        output_dir = get_nested(config, 'export.output_directory')
        if output_dir and os.path.exists(output_dir) and not os.path.isdir(output_dir):
            raise ValueError(f"export.output_directory '{output_dir}' is not a directory")

        # Validate timeout settings
        timeout = get_nested(config, 'advanced.request_timeout', 30)
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ValueError("advanced.request_timeout must be a positive number")

        max_retries = get_nested(config, 'advanced.max_retries', 3)
        if isinstance(max_retries, bool) or not isinstance(max_retries, int) or max_retries < 0:
            raise ValueError("advanced.max_retries must be a non-negative integer")

    @classmethod
    def merge_with_args(cls, config: Dict[str, Any], args) -> Dict[str, Any]:
        """
        Merge configuration with CLI arguments.
        CLI arguments take precedence over config file values.

        Args:
            config: Base configuration dictionary
            args: CLI arguments with attributes matching config keys

        Returns:
            Merged configuration dictionary
        """
        merged = copy.deepcopy(config)

        # Ensure nested dictionaries exist
        for section in ('confluence', 'migration', 'export', 'site', 'logging'):
            if section not in merged or merged[section] is None:
                merged[section] = {}

        # Merge confluence settings
        if getattr(args, 'url', None):
            merged['confluence']['base_url'] = args.url
        if getattr(args, 'email', None):
            merged['confluence']['email'] = args.email
        if getattr(args, 'token', None):
            merged['confluence']['api_token'] = args.token
        if getattr(args, 'space', None):
            merged['confluence']['space_key'] = args.space

        # Merge migration settings
        if getattr(args, 'page_id', None):
            merged['migration']['root_page_id'] = args.page_id
        if getattr(args, 'no_external_images', False):
            merged['migration']['download_external_images'] = False

        # Merge export and site settings
        if getattr(args, 'output', None):
            merged['export']['output_directory'] = args.output
        if getattr(args, 'title', None):
            merged['site']['title'] = args.title
        if getattr(args, 'description', None):
            merged['site']['description'] = args.description

        # Merge logging settings
        if getattr(args, 'log_file', None):
            merged['logging']['file'] = args.log_file

        return merged

    @classmethod
    def sample(cls, fmt: str = 'yaml') -> str:
        """Text of a sample configuration file in the given format."""
        if fmt == 'env':
            return SAMPLE_ENV

        sample = deep_merge(DEFAULT_CONFIG, {
            'confluence': {
                'base_url': 'https://yoursite.atlassian.net',
                'email': 'your-email@example.com',
                'api_token': '${CONFLUENCE_API_TOKEN}',
                'space_key': 'YOURSPACE',
            },
            'migration': {'root_page_id': '12345678'},
            'logging': {'level': 'INFO', 'file': None},
        })

        if fmt == 'json':
            flat = {key: get_nested(sample, path) for key, path in FLAT_KEYS.items()}
            return json.dumps(flat, indent=2) + '\n'
        if fmt == 'yaml':
            return yaml.safe_dump(sample, default_flow_style=False, sort_keys=False)
        raise ValueError(f"Unsupported config format: {fmt}")

    @classmethod
    def _expand_flat_keys(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        """Map flat run-control keys onto the nested configuration layout."""
        if not any(key in FLAT_KEYS for key in data):
            return data

        expanded = {key: value for key, value in data.items() if key not in FLAT_KEYS}
        for key, path in FLAT_KEYS.items():
            if key in data:
                set_nested(expanded, path, data[key])
        return expanded

    @classmethod
    def _substitute_env_vars_recursive(cls, data: Any) -> Any:
        """Recursively substitute environment variables in data structure."""
        if isinstance(data, dict):
            return {key: cls._substitute_env_vars_recursive(value) for key, value in data.items()}
        elif isinstance(data, list):
            return [cls._substitute_env_vars_recursive(item) for item in data]
        elif isinstance(data, str):
            return cls._substitute_env_vars(data)
        else:
            return data

    @classmethod
    def _substitute_env_vars(cls, value: str) -> str:
        """Substitute environment variables in a string value."""
        def replace_match(match):
            var_name = match.group(1)
            env_value = os.getenv(var_name)
            return env_value if env_value is not None else match.group(0)

        return cls.ENV_VAR_PATTERN.sub(replace_match, value)

    @staticmethod
    def _validate_required_field(config_section: dict, field: str) -> None:
        """Validate that a required field exists and has a value."""
        value = get_nested(config_section, field)
        if value is None or value == '':
            raise ValueError(f"Missing required configuration: {field}")

        # Check for unsubstituted environment variables
        if isinstance(value, str) and '${' in value:
            match = ConfigLoader.ENV_VAR_PATTERN.search(value)
            var_name = match.group(1) if match else value
            raise ValueError(
                f"Configuration field '{field}' contains unsubstituted environment variable: {value}. "
                f"Please set the {var_name} environment variable or provide a value in config file."
            )

    @staticmethod
    def _validate_url(url: str, field_name: str) -> None:
        """Validate URL format."""
        parsed = urlparse(str(url))
        if not parsed.scheme or parsed.scheme not in ['http', 'https']:
            raise ValueError(f"{field_name} must use http or https scheme: {url}")
        if not parsed.netloc:
            raise ValueError(f"{field_name} missing hostname: {url}")


def get_nested(config: dict, path: str, default: Any = None) -> Any:
    """Safely retrieve nested configuration values using dot notation.

    Args:
        config: Configuration dictionary
        path: Dot-separated path (e.g., "confluence.base_url")
        default: Default value if path doesn't exist

    Returns:
        Value at the nested path or default
    """
    keys = path.split('.')
    value = config

    for key in keys:
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default

    return value


def set_nested(config: dict, path: str, value: Any) -> None:
    """Set a nested configuration value using dot notation, creating sections."""
    keys = path.split('.')
    section = config
    for key in keys[:-1]:
        if not isinstance(section.get(key), dict):
            section[key] = {}
        section = section[key]
    section[keys[-1]] = value


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``base`` updated with ``override``; None values do not override."""
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        elif value is not None:
            merged[key] = copy.deepcopy(value)
    return merged


__all__ = ['ConfigLoader', 'get_nested', 'set_nested', 'deep_merge', 'DEFAULT_CONFIG']
