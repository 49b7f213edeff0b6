#!/usr/bin/env python3
"""
Configuration Management Module for the Colored Asset Protocol CLI

Handles hierarchical configuration loading (defaults, profile, file,
environment) for the record codecs and the transaction assembler.
"""

import os
import json
from pathlib import Path
from typing import Dict, Any, Optional, List, Union
import copy
import logging

import yaml

from psbt.utils import MAX_OP_RETURN_SIZE

# Configuration file locations in order of precedence (highest to lowest)
CONFIG_SEARCH_PATHS = [
    Path.cwd() / '.cap.yml',
    Path.cwd() / '.cap.json',
    Path.home() / '.cap' / 'config.yml',
    Path.home() / '.cap' / 'config.json',
]

# Environment variable prefix; nested keys are separated by a double underscore
ENV_PREFIX = 'CAP_'
ENV_NESTING = '__'

# Default configuration values
DEFAULT_CONFIG = {
    # Record encoding
    'protocol': {
        'version': 0x03,
        'max_bytes': 80,
    },

    # Transaction assembly
    'assembly': {
        'min_dust_value': 546,
        'fee': 1000,
        'metadata_surcharge': 700,
        'split_change': False,
        'carrier_pubkey': None,
    },

    # CLI behavior
    'cli': {
        'output_format': 'table',  # table, json, yaml
        'verbose': 0,
    },
}

# Configuration profiles
PROFILES = {
    'compact': {
        'protocol': {'max_bytes': 40},
    },
    'split-change': {
        'assembly': {'split_change': True},
    },
}


class ConfigurationManager:
    """Manages hierarchical configuration with environment variable support."""

    def __init__(self, config_file: Optional[str] = None, profile: Optional[str] = None,
                 environ: Optional[Dict[str, str]] = None):
        """
        Initialize configuration manager.

        Args:
            config_file: Explicit configuration file path
            profile: Configuration profile to load (compact, split-change)
            environ: Environment mapping to read instead of os.environ
        """
        self.logger = logging.getLogger(__name__)
        self.config_file = config_file
        self.profile = profile
        self.environ = os.environ if environ is None else environ
        self._config_cache = None
        self._config_sources = []

    def load(self) -> Dict[str, Any]:
        """
        Load configuration from all sources in hierarchical order.

        Returns:
            Merged configuration dictionary
        """
        if self._config_cache is not None:
            return self._config_cache

        configs = []

        # 1. Start with default configuration
        configs.append(copy.deepcopy(DEFAULT_CONFIG))
        self._config_sources.append("defaults")

        # 2. Apply profile if specified
        if self.profile:
            if self.profile not in PROFILES:
                raise ValueError(f"Unknown configuration profile: {self.profile}")
            configs.append(PROFILES[self.profile])
            self._config_sources.append(f"profile:{self.profile}")
            self.logger.debug(f"Applied profile: {self.profile}")

        # 3. Load configuration files
        if self.config_file:
            config_data = self._load_config_file(Path(self.config_file))
            if config_data:
                configs.append(config_data)
                self._config_sources.append(f"file:{self.config_file}")
        else:
            for config_path in CONFIG_SEARCH_PATHS:
                if config_path.exists():
                    config_data = self._load_config_file(config_path)
                    if config_data:
                        configs.append(config_data)
                        self._config_sources.append(f"file:{config_path}")
                        self.logger.debug(f"Loaded config from {config_path}")
                        break  # Use first found config file

        # 4. Apply environment variables
        env_config = self._load_environment_variables()
        if env_config:
            configs.append(env_config)
            self._config_sources.append("environment")

        # Later sources override earlier ones
        self._config_cache = self._deep_merge(*configs)
        return self._config_cache

    def _load_config_file(self, path: Path) -> Optional[Dict[str, Any]]:
        """Load configuration from a YAML or JSON file."""
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, 'r') as f:
            if path.suffix in ['.yml', '.yaml']:
                data = yaml.safe_load(f)
            elif path.suffix == '.json':
                data = json.load(f)
            else:
                raise ValueError(f"Unknown config file format: {path}")

        if data is not None and not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        return data

    def _load_environment_variables(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        env_config = {}

        for key, value in self.environ.items():
            if not key.startswith(ENV_PREFIX):
                continue

            # e.g., CAP_PROTOCOL__MAX_BYTES -> {'protocol': {'max_bytes': value}}
            parts = key[len(ENV_PREFIX):].lower().split(ENV_NESTING)
            current = env_config
            for part in parts[:-1]:
                current = current.setdefault(part, {})
            current[parts[-1]] = self._parse_env_value(value)

        return env_config

    def _parse_env_value(self, value: str) -> Union[str, int, float, bool, None]:
        """Parse environment variable value to appropriate type."""
        # JSON covers numbers, booleans, null and complex types
        try:
            return json.loads(value)
        except ValueError:
            pass

        if value.lower() in ['true', 'yes']:
            return True
        elif value.lower() in ['false', 'no']:
            return False

        return value

    def _deep_merge(self, *dicts: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge multiple dictionaries."""
        result = {}

        for dictionary in dicts:
            for key, value in dictionary.items():
                if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                    result[key] = self._deep_merge(result[key], value)
                else:
                    result[key] = value

        return result

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation path.

        Args:
            key_path: Dot-separated path (e.g., 'protocol.max_bytes')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        current = self.load()

        for key in key_path.split('.'):
            if isinstance(current, dict) and key in current:
                current = current[key]
            else:
                return default

        return current

    def set(self, key_path: str, value: Any):
        """Set configuration value by dot-notation path."""
        config = self.load()

        keys = key_path.split('.')
        current = config
        for key in keys[:-1]:
            current = current.setdefault(key, {})

        current[keys[-1]] = value

    def validate(self) -> List[str]:
        """
        Validate current configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        max_bytes = self.get('protocol.max_bytes')
        if not isinstance(max_bytes, int) or not 0 < max_bytes <= MAX_OP_RETURN_SIZE:
            errors.append(f"protocol.max_bytes must be between 1 and {MAX_OP_RETURN_SIZE}: {max_bytes}")

        version = self.get('protocol.version')
        if not isinstance(version, int) or not 0 <= version <= 0xff:
            errors.append(f"protocol.version must fit one byte: {version}")

        for key in ('min_dust_value', 'fee', 'metadata_surcharge'):
            value = self.get(f'assembly.{key}')
            if not isinstance(value, int) or value < 0:
                errors.append(f"assembly.{key} must be a non-negative integer: {value}")

        carrier_pubkey = self.get('assembly.carrier_pubkey')
        if carrier_pubkey is not None:
            try:
                if len(bytes.fromhex(carrier_pubkey)) != 33:
                    errors.append("assembly.carrier_pubkey must be a 33-byte compressed public key")
            except (TypeError, ValueError):
                errors.append(f"assembly.carrier_pubkey is not hex: {carrier_pubkey}")

        verbose = self.get('cli.verbose')
        if not isinstance(verbose, int) or verbose < 0:
            errors.append(f"cli.verbose must be a non-negative integer: {verbose}")

        output_format = self.get('cli.output_format')
        if output_format not in ['table', 'json', 'yaml']:
            errors.append(f"Invalid output format: {output_format}")

        return errors

    def get_sources(self) -> List[str]:
        """Get list of configuration sources that were loaded."""
        self.load()
        return self._config_sources

    def reset(self):
        """Reset configuration cache."""
        self._config_cache = None
        self._config_sources = []
