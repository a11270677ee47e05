"""Configuration loader with YAML support and environment variable substitution."""

import copy
import os
import re
from typing import Any, Dict, List
from urllib.parse import urlparse

import yaml


class ConfigLoader:
    """Handles loading and validation of configuration files."""

    ENV_VAR_PATTERN = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*)\}')

    @classmethod
    def load(cls, config_path: str) -> Dict[str, Any]:
        """
        Load configuration from YAML file with environment variable substitution.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            Parsed configuration dictionary

        Raises:
            FileNotFoundError: If config file doesn't exist
            yaml.YAMLError: If YAML parsing fails
        """
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f)

        if not isinstance(config_data, dict):
            raise ValueError("Configuration file must contain a dictionary")

        # Substitute environment variables recursively
        config_data = cls._substitute_env_vars_recursive(config_data)

        return config_data

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
        auth_type = get_nested(config, 'confluence.auth_type', 'basic')

        if auth_type == 'basic':
            cls._validate_required_field(config, 'confluence.username')
            cls._validate_required_field(config, 'confluence.api_token')
        elif auth_type == 'bearer':
            cls._validate_required_field(config, 'confluence.api_token')
        else:
            raise ValueError("confluence.auth_type must be 'basic' or 'bearer'")

        cls._validate_url(get_nested(config, 'confluence.base_url'), 'confluence.base_url')

        verify_ssl = get_nested(config, 'confluence.verify_ssl', True)
        if not isinstance(verify_ssl, bool):
            raise ValueError("confluence.verify_ssl must be a boolean")

        # Validate spaces
        spaces = config.get('spaces')
        if not isinstance(spaces, list) or not spaces:
            raise ValueError("spaces must be a non-empty list of {key, local_path} entries")
        seen_keys = set()
        for index, space in enumerate(spaces):
            if not isinstance(space, dict) or not space.get('key'):
                raise ValueError(f"spaces[{index}] must have a 'key'")
            key = space['key']
            if not re.match(r'^[A-Za-z0-9_~]+$', str(key)):
                raise ValueError(f"spaces[{index}].key '{key}' contains invalid characters")
            if key in seen_keys:
                raise ValueError(f"Duplicate space key: {key}")
            seen_keys.add(key)

        cls._validate_required_field(config, 'export.output_directory')
        output_dir = get_nested(config, 'export.output_directory')
        if output_dir and os.path.exists(output_dir) and not os.path.isdir(output_dir):
            raise ValueError(f"export.output_directory '{output_dir}' is not a directory")

        batch_size = get_nested(config, 'download.batch_size', 250)
        if not isinstance(batch_size, int) or isinstance(batch_size, bool) or batch_size < 1:
            raise ValueError("download.batch_size must be a positive integer")

        include_archived = get_nested(config, 'download.include_archived', True)
        if not isinstance(include_archived, bool):
            raise ValueError("download.include_archived must be a boolean")

        # Validate timeout settings
        timeout = get_nested(config, 'advanced.request_timeout', 30)
        if not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ValueError("advanced.request_timeout must be a positive number")

        max_retries = get_nested(config, 'advanced.max_retries', 0)
        if not isinstance(max_retries, int) or max_retries < 0:
            raise ValueError("advanced.max_retries must be a non-negative integer")

        rate_limit = get_nested(config, 'advanced.rate_limit', 0.0)
        if not isinstance(rate_limit, (int, float)) or rate_limit < 0:
            raise ValueError("advanced.rate_limit must be a non-negative number")

    @classmethod
    def merge_with_args(cls, config: Dict[str, Any], args) -> Dict[str, Any]:
        """
        Merge configuration file with CLI arguments.
        CLI arguments take precedence over config file values.

        Args:
            config: Base configuration dictionary
            args: CLI arguments with attributes matching config keys

        Returns:
            Merged configuration dictionary
        """
        merged = copy.deepcopy(config)

        # Ensure nested dictionaries exist
        for section in ('confluence', 'export', 'download', 'logging'):
            if not isinstance(merged.get(section), dict):
                merged[section] = {}

        if getattr(args, 'spaces', None):
            merged['spaces'] = cls._merge_spaces(merged.get('spaces') or [], args.spaces)

        if getattr(args, 'batch_size', None):
            merged['download']['batch_size'] = args.batch_size

        if getattr(args, 'output_dir', None):
            merged['export']['output_directory'] = args.output_dir

        if getattr(args, 'log_file', None):
            merged['logging']['file'] = args.log_file

        verbose = getattr(args, 'verbose', 0)
        if verbose:
            merged['logging']['level'] = 'DEBUG' if verbose >= 2 else 'INFO'

        return merged

    @staticmethod
    def _merge_spaces(configured: List[Dict[str, Any]], requested: List[str]) -> List[Dict[str, Any]]:
        """Restrict spaces to the requested keys, keeping configured local paths."""
        by_key = {space.get('key'): space for space in configured if isinstance(space, dict)}
        return [dict(by_key.get(key) or {'key': key}) for key in requested]

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
        parsed = urlparse(url)
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


__all__ = ['ConfigLoader', 'get_nested']
