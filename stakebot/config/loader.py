"""
StakeBot configuration

config/config.yaml is read once per process, secrets are substituted from the
environment (and .env), and the result is validated before anything touches
the ledger. Invalid configuration stops the bot at startup.
"""

import os
import re
from pathlib import Path
from typing import Any, Dict

import yaml
from dotenv import load_dotenv
from packaging.version import InvalidVersion, Version
from pydantic import BaseModel, ConfigDict, PrivateAttr

VALID_CLUSTERS = ['mainnet-beta', 'testnet', 'unknown']
VALID_BACKENDS = ['pooled', 'per_validator']

PERCENTAGE_KEYS = [
    'classification.quality_block_producer_percentage',
    'classification.max_poor_block_producer_percentage',
    'classification.bad_cluster_average_skip_rate',
    'policy.max_commission',
    'policy.max_old_release_version_percentage',
    'policy.max_infrastructure_concentration',
]

# ${NAME} is required, ${NAME:-fallback} is optional
ENV_PLACEHOLDER = re.compile(r'\$\{(\w+)(:-([^}]*))?\}')


class Config(BaseModel):
    """Validated configuration; sections are read with dot paths"""

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="allow")

    _raw_config: Dict[str, Any] = PrivateAttr(default_factory=dict)

    def __init__(self, **data):
        super().__init__(**data)
        self._raw_config = data

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Look up 'section.key' (default if any part of the path is missing)

        Example:
            config.get('delinquency.grace_slot_distance')  # 21600
        """
        node = self._raw_config
        for key in key_path.split('.'):
            if not isinstance(node, dict) or key not in node:
                return default
            node = node[key]
        return node

    def get_required(self, key_path: str) -> Any:
        """
        Raises:
            ValueError: If the key is missing or null
        """
        value = self.get(key_path)
        if value is None:
            raise ValueError(f"Required config key not found: {key_path}")
        return value


def _interpolate_env_vars(config_str: str) -> str:
    """
    Substitute ${NAME} / ${NAME:-fallback} placeholders

    Full-line comments are left untouched, so documentation in the YAML may
    mention placeholders freely.

    Raises:
        ValueError: If a required variable is not set
    """

    def substitute(match):
        name, has_fallback, fallback = match.group(1), match.group(2) is not None, match.group(3)
        value = os.getenv(name)
        if value is not None:
            return value
        if has_fallback:
            return fallback or ""
        raise ValueError(
            f"Environment variable '{name}' is required but not set. "
            f"Check your .env file or environment."
        )

    lines = []
    for line in config_str.splitlines(keepends=True):
        if line.lstrip().startswith('#'):
            lines.append(line)
        else:
            lines.append(ENV_PLACEHOLDER.sub(substitute, line))
    return ''.join(lines)


def load_config(config_path: str | Path = "config/config.yaml") -> Config:
    """
    Load and validate the StakeBot configuration

    Raises:
        FileNotFoundError: If config_path does not exist
        ValueError: On a missing env var or an invalid setting
        yaml.YAMLError: If the file is not valid YAML
    """
    if Path(".env").exists():
        load_dotenv(".env")

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path} (resolved to {config_path.absolute()})"
        )

    raw_text = config_path.read_text()

    try:
        config_text = _interpolate_env_vars(raw_text)
    except ValueError as e:
        raise ValueError(f"Failed to interpolate environment variables in {config_path}: {e}") from e

    try:
        config_dict = yaml.safe_load(config_text)
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"Failed to parse YAML config {config_path}: {e}") from e

    if not isinstance(config_dict, dict):
        raise ValueError(
            f"Config file {config_path} must contain a YAML dictionary, got {type(config_dict)}"
        )

    config = Config(**config_dict)
    _validate_config(config)
    return config


def _validate_config(config: Config) -> None:
    """
    Raises:
        ValueError: On the first invalid setting
    """
    cluster = config.get('cluster.name')
    if cluster not in VALID_CLUSTERS:
        raise ValueError(
            f"cluster.name must be one of {VALID_CLUSTERS}, got '{cluster}'"
        )

    if not config.get('cluster.json_rpc_url'):
        raise ValueError("cluster.json_rpc_url is required")

    for key in PERCENTAGE_KEYS:
        value = config.get_required(key)
        if not isinstance(value, (int, float)) or not 0 <= value <= 100:
            raise ValueError(f"{key} must be a percentage between 0 and 100, got {value!r}")

    for key in ('delinquency.grace_slot_distance', 'delinquency.hold_slot_distance'):
        value = config.get_required(key)
        if not isinstance(value, int) or value < 0:
            raise ValueError(f"{key} must be a non-negative integer, got {value!r}")

    min_release_version = config.get('policy.min_release_version')
    if min_release_version is not None:
        try:
            Version(str(min_release_version))
        except InvalidVersion as e:
            raise ValueError(f"policy.min_release_version is not a valid version: {e}") from e

    backend = config.get('allocation.backend')
    if backend not in VALID_BACKENDS:
        raise ValueError(
            f"allocation.backend must be one of {VALID_BACKENDS}, got '{backend}'"
        )

    if config.get_required('submission.max_attempts') < 1:
        raise ValueError("submission.max_attempts must be at least 1")
