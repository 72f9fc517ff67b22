"""
Unit Tests for Configuration Loader

Tests the config loader module with focus on:
- Environment variable interpolation
- YAML parsing
- Validation logic
- Fast-fail behavior
"""

import copy
import sys
from pathlib import Path

import pytest
import yaml

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from stakebot.config.loader import (
    load_config,
    _interpolate_env_vars,
    _validate_config,
    Config
)


@pytest.fixture
def valid_config_data(dry_run_config):
    return copy.deepcopy(dry_run_config)


def write_config(tmp_path: Path, data: dict) -> Path:
    config_file = tmp_path / "config.yaml"
    with open(config_file, 'w') as f:
        yaml.dump(data, f)
    return config_file


class TestConfigModel:
    """Test Config model functionality"""

    def test_get_nested_value(self):
        """Test getting nested config values with dot notation"""
        config = Config(**{'classification': {'quality_block_producer_percentage': 15}})

        assert config.get('classification.quality_block_producer_percentage') == 15

    def test_get_missing_value_returns_default(self):
        config = Config(**{})

        assert config.get('nonexistent.key', 'default') == 'default'

    def test_get_required_raises_on_missing(self):
        config = Config(**{})

        with pytest.raises(ValueError, match="Required config key not found"):
            config.get_required('missing.key')

    def test_get_with_none_value(self):
        """None is returned as-is, not replaced by the default"""
        config = Config(**{'policy': {'min_release_version': None}})

        assert config.get('policy.min_release_version', 'default') is None

    def test_raw_config_is_plain_dict(self):
        data = {'cluster': {'name': 'testnet'}}
        config = Config(**data)

        assert config._raw_config['cluster']['name'] == 'testnet'


class TestEnvInterpolation:
    """Test environment variable interpolation"""

    def test_interpolate_single_var(self, monkeypatch):
        monkeypatch.setenv('STAKEBOT_TEST_VAR', 'test_value')

        assert _interpolate_env_vars("key: ${STAKEBOT_TEST_VAR}") == "key: test_value"

    def test_optional_var_with_default(self, monkeypatch):
        monkeypatch.delenv('STAKEBOT_UNSET_VAR', raising=False)

        assert _interpolate_env_vars("url: ${STAKEBOT_UNSET_VAR:-http://localhost:8899}") == \
            "url: http://localhost:8899"
        assert _interpolate_env_vars("key: ${STAKEBOT_UNSET_VAR:-}") == "key: "

    def test_missing_env_var_raises_error(self, monkeypatch):
        monkeypatch.delenv('NONEXISTENT_VAR', raising=False)

        with pytest.raises(ValueError, match="Environment variable 'NONEXISTENT_VAR' is required"):
            _interpolate_env_vars("key: ${NONEXISTENT_VAR}")

    def test_no_interpolation_if_no_vars(self):
        config_str = "key: plain_value"

        assert _interpolate_env_vars(config_str) == config_str

    def test_comment_lines_are_not_interpolated(self, monkeypatch):
        monkeypatch.delenv('VAR', raising=False)
        monkeypatch.setenv('STAKEBOT_TEST_VAR', 'value')
        config_str = "# use ${VAR} for required secrets\n  # ${VAR:-} is optional\nkey: ${STAKEBOT_TEST_VAR}\n"

        result = _interpolate_env_vars(config_str)

        assert result.startswith("# use ${VAR} for required secrets\n")
        assert result.endswith("key: value\n")


class TestConfigValidation:
    """Test configuration validation logic"""

    def test_validate_valid_config(self, valid_config_data):
        _validate_config(Config(**valid_config_data))

    def test_invalid_cluster_raises(self, valid_config_data):
        valid_config_data['cluster']['name'] = 'devnet-99'

        with pytest.raises(ValueError, match="cluster.name must be one of"):
            _validate_config(Config(**valid_config_data))

    def test_missing_rpc_url_raises(self, valid_config_data):
        valid_config_data['cluster']['json_rpc_url'] = ''

        with pytest.raises(ValueError, match="json_rpc_url is required"):
            _validate_config(Config(**valid_config_data))

    @pytest.mark.parametrize("section,key", [
        ('classification', 'quality_block_producer_percentage'),
        ('policy', 'max_commission'),
        ('policy', 'max_infrastructure_concentration'),
    ])
    def test_percentage_out_of_range_raises(self, valid_config_data, section, key):
        valid_config_data[section][key] = 101

        with pytest.raises(ValueError, match="must be a percentage"):
            _validate_config(Config(**valid_config_data))

    def test_negative_grace_distance_raises(self, valid_config_data):
        valid_config_data['delinquency']['grace_slot_distance'] = -1

        with pytest.raises(ValueError, match="non-negative integer"):
            _validate_config(Config(**valid_config_data))

    def test_invalid_min_release_version_raises(self, valid_config_data):
        valid_config_data['policy']['min_release_version'] = 'latest-and-greatest'

        with pytest.raises(ValueError, match="min_release_version"):
            _validate_config(Config(**valid_config_data))

    def test_invalid_backend_raises(self, valid_config_data):
        valid_config_data['allocation']['backend'] = 'magic'

        with pytest.raises(ValueError, match="allocation.backend must be one of"):
            _validate_config(Config(**valid_config_data))

    def test_zero_attempts_raises(self, valid_config_data):
        valid_config_data['submission']['max_attempts'] = 0

        with pytest.raises(ValueError, match="max_attempts"):
            _validate_config(Config(**valid_config_data))


class TestLoadConfig:
    """Test full config loading workflow"""

    def test_load_config_success(self, tmp_path, valid_config_data):
        config = load_config(write_config(tmp_path, valid_config_data))

        assert config.get('cluster.name') == 'unknown'
        assert config.get('delinquency.hold_slot_distance') == 256

    def test_load_config_with_env_vars(self, tmp_path, monkeypatch, valid_config_data):
        monkeypatch.setenv('TEST_RPC_URL', 'http://testhost:8899')
        valid_config_data['cluster']['json_rpc_url'] = '${TEST_RPC_URL}'

        config = load_config(write_config(tmp_path, valid_config_data))

        assert config.get('cluster.json_rpc_url') == 'http://testhost:8899'

    def test_load_config_missing_file_raises(self):
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            load_config("nonexistent_config.yaml")

    def test_load_config_invalid_yaml_raises(self, tmp_path):
        config_file = tmp_path / "invalid.yaml"
        config_file.write_text("invalid: yaml: syntax: here")

        with pytest.raises(yaml.YAMLError):
            load_config(config_file)

    def test_load_config_non_mapping_raises(self, tmp_path):
        config_file = tmp_path / "list.yaml"
        config_file.write_text("- just\n- a list\n")

        with pytest.raises(ValueError, match="must contain a YAML dictionary"):
            load_config(config_file)

    def test_shipped_config_is_valid(self, monkeypatch):
        """config/config.yaml loads with only optional env vars unset"""
        monkeypatch.setenv('HOME', '/tmp')
        for name in ('VAR', 'STAKEBOT_RPC_URL', 'STAKEBOT_AUTHORITY_KEY', 'STAKEBOT_SOURCE_ACCOUNT'):
            monkeypatch.delenv(name, raising=False)
        root = Path(__file__).parent.parent.parent

        config = load_config(root / 'config' / 'config.yaml')

        assert config.get('dry_run') is True
        assert config.get('delinquency.grace_slot_distance') == 21600
