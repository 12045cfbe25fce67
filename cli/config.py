#!/usr/bin/env python3
"""
Configuration Management Module for the NFT Machine Minter CLI

Handles hierarchical configuration loading (defaults, configuration file,
.env file, environment variables), validation, and construction of the
node client, signing account and record store from the merged settings.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import yaml
from dotenv import find_dotenv, load_dotenv

from crypto.exceptions import CryptoError
from crypto.keys import Account, normalize_address
from network.gateway import ChainGateway
from network.rpc import DEFAULT_FAUCET_URL, DEFAULT_NODE_URL, AptosRestClient, NodeConfig
from registry.storage import DEFAULT_RECORD_FILE, RecordStore

# Configuration file locations in order of precedence (highest to lowest)
CONFIG_SEARCH_PATHS = [
    Path.cwd() / '.nftminter.yml',
    Path.cwd() / '.nftminter.json',
    Path.home() / '.nftminter' / 'config.yml',
    Path.home() / '.nftminter' / 'config.json',
]

# Default configuration values
DEFAULT_CONFIG = {
    'network': {
        'node_url': DEFAULT_NODE_URL,
        'faucet_url': DEFAULT_FAUCET_URL,
        'timeout': 30,
        'max_retries': 3,
        'wait_timeout': 60.0
    },
    'signer': {
        'private_key': None
    },
    'machine': {
        'address': None,
        'max_gas_amount': 200000,
        'gas_unit_price': 100,
        'expiration_seconds': 600
    },
    'collection': {
        'record_file': DEFAULT_RECORD_FILE,
        'backup_count': 5
    },
    'cli': {
        'output_format': 'table'
    }
}

# Environment variables and the configuration paths they set
ENV_MAPPING: Dict[str, Tuple[str, Callable[[str], Any]]] = {
    'NFT_CREATOR_PRIVATE_KEY': ('signer.private_key', str),
    'NFT_MACHINE': ('machine.address', str),
    'NFT_MAX_GAS_AMOUNT': ('machine.max_gas_amount', int),
    'NFT_GAS_UNIT_PRICE': ('machine.gas_unit_price', int),
    'NFT_COLLECTION_FILE': ('collection.record_file', str),
    'APTOS_NODE_URL': ('network.node_url', str),
    'APTOS_FAUCET_URL': ('network.faucet_url', str),
    'APTOS_NODE_TIMEOUT': ('network.timeout', int),
    'APTOS_WAIT_TIMEOUT': ('network.wait_timeout', float),
}


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


class ConfigurationManager:
    """Manages hierarchical configuration with environment variable support."""

    def __init__(self, config_file: Optional[str] = None, env_file: Optional[str] = None,
                 use_dotenv: bool = True):
        """
        Initialize configuration manager.

        Args:
            config_file: Explicit configuration file path
            env_file: Explicit .env file (default: search from the working directory)
            use_dotenv: Whether to load a .env file into the environment
        """
        self.logger = logging.getLogger('nft-minter.config')
        self.config_file = config_file
        self.env_file = env_file
        self.use_dotenv = use_dotenv
        self._config_cache: Optional[Dict[str, Any]] = None
        self._config_sources: List[str] = []

    def load(self) -> Dict[str, Any]:
        """
        Load configuration from all sources in hierarchical order.

        Returns:
            Merged configuration dictionary
        """
        if self._config_cache is not None:
            return self._config_cache

        configs = [DEFAULT_CONFIG]
        self._config_sources = ["defaults"]

        if self.config_file:
            config_path = Path(self.config_file)
            if not config_path.exists():
                raise ConfigurationError(f"Config file not found: {config_path}")
            configs.append(self._load_config_file(config_path))
            self._config_sources.append(f"file:{config_path}")
        else:
            for config_path in CONFIG_SEARCH_PATHS:
                if config_path.exists():
                    configs.append(self._load_config_file(config_path))
                    self._config_sources.append(f"file:{config_path}")
                    self.logger.debug(f"Loaded config from {config_path}")
                    break

        if self.use_dotenv and load_dotenv(self.env_file or find_dotenv(usecwd=True), override=False):
            self._config_sources.append("dotenv")

        env_config = self._load_environment_variables()
        if env_config:
            configs.append(env_config)
            self._config_sources.append("environment")

        self._config_cache = self._deep_merge(*configs)
        return self._config_cache

    def _load_config_file(self, path: Path) -> Dict[str, Any]:
        """Load configuration from file."""
        try:
            with open(path, 'r') as f:
                if path.suffix in ['.yml', '.yaml']:
                    data = yaml.safe_load(f)
                elif path.suffix == '.json':
                    data = json.load(f)
                else:
                    raise ConfigurationError(f"Unknown config file format: {path}")
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load config from {path}: {e}")

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")
        return data

    def _load_environment_variables(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        env_config: Dict[str, Any] = {}

        for env_name, (key_path, converter) in ENV_MAPPING.items():
            raw = os.getenv(env_name)
            if raw is None or raw == "":
                continue

            try:
                value = converter(raw)
            except ValueError:
                raise ConfigurationError(f"Invalid value for {env_name}: {raw!r}")

            current = env_config
            keys = key_path.split('.')
            for key in keys[:-1]:
                current = current.setdefault(key, {})
            current[keys[-1]] = value

        return env_config

    def _deep_merge(self, *dicts: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge multiple dictionaries."""
        result: Dict[str, Any] = {}

        for dictionary in dicts:
            for key, value in dictionary.items():
                if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                    result[key] = self._deep_merge(result[key], value)
                elif isinstance(value, dict):
                    result[key] = self._deep_merge(value)
                else:
                    result[key] = value

        return result

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation path.

        Args:
            key_path: Dot-separated path (e.g., 'network.node_url')
            default: Default value if key not found
        """
        current: Any = self.load()

        for key in key_path.split('.'):
            if isinstance(current, dict) and key in current:
                current = current[key]
            else:
                return default

        return current

    def validate(self, require_signer: bool = True) -> List[str]:
        """
        Validate current configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        machine = self.get('machine.address')
        if not machine:
            errors.append("Minting machine address is required (NFT_MACHINE)")
        else:
            try:
                normalize_address(machine)
            except CryptoError as e:
                errors.append(f"Invalid minting machine address: {e}")

        if require_signer:
            if not self.get('signer.private_key'):
                errors.append("Signing key is required (NFT_CREATOR_PRIVATE_KEY)")
            else:
                try:
                    Account.from_hex(self.get('signer.private_key'))
                except CryptoError as e:
                    errors.append(f"Invalid signing key: {e}")

        for key in ('machine.max_gas_amount', 'machine.gas_unit_price', 'collection.backup_count'):
            value = self.get(key)
            if not isinstance(value, int) or value < 0:
                errors.append(f"{key} must be a non-negative integer")

        return errors

    def get_sources(self) -> List[str]:
        """Get list of configuration sources that were loaded."""
        self.load()
        return self._config_sources

    def reset(self):
        """Reset configuration cache."""
        self._config_cache = None
        self._config_sources = []

    # Component construction

    def node_config(self) -> NodeConfig:
        return NodeConfig(
            node_url=self.get('network.node_url'),
            faucet_url=self.get('network.faucet_url'),
            timeout=self.get('network.timeout'),
            max_retries=self.get('network.max_retries'),
            wait_timeout=self.get('network.wait_timeout')
        )

    def account(self) -> Account:
        key_material = self.get('signer.private_key')
        if not key_material:
            raise ConfigurationError("Signing key is required (NFT_CREATOR_PRIVATE_KEY)")
        return Account.from_hex(key_material)

    def record_store(self) -> RecordStore:
        return RecordStore(
            self.get('collection.record_file'),
            backup_count=self.get('collection.backup_count')
        )

    def gateway(self) -> ChainGateway:
        errors = self.validate()
        if errors:
            raise ConfigurationError("; ".join(errors))

        return ChainGateway(
            AptosRestClient(self.node_config()),
            self.account(),
            self.get('machine.address'),
            max_gas_amount=self.get('machine.max_gas_amount'),
            gas_unit_price=self.get('machine.gas_unit_price'),
            expiration_seconds=self.get('machine.expiration_seconds')
        )
