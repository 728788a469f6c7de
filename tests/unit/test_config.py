# PATH: tests/unit/test_config.py
"""
Unit tests for configuration loading.
"""

import textwrap
from pathlib import Path

import pytest

from config import (
    CONFIG_DIR,
    get_operator_key,
    load_directory,
    load_engine_settings,
    load_networks,
    rpc_env_key,
)
from core.constants import ErrorCode
from core.exceptions import ConfigError

NETWORKS_YAML = textwrap.dedent("""
    xnet:
      chain_id: 1
      rpcs: ["https://x-0.example", "https://x-1.example"]
      router_address: "0xa1a1a1a1a1a1a1a1a1a1a1a1a1a1a1a1a1a1a1a1"
      token_address: "0xa2a2a2a2a2a2a2a2a2a2a2a2a2a2a2a2a2a2a2a2"
      decimals: 6
      symbol: USDC
      use_builder_code: true
    ynet:
      chain_id: 2
      rpcs: ["https://y-0.example"]
      router_address: "0xb1b1b1b1b1b1b1b1b1b1b1b1b1b1b1b1b1b1b1b1"
      token_address: "0xb2b2b2b2b2b2b2b2b2b2b2b2b2b2b2b2b2b2b2b2"
      decimals: 18
      symbol: USDT
""")


@pytest.fixture
def networks_file(tmp_path: Path) -> Path:
    path = tmp_path / "networks.yaml"
    path.write_text(NETWORKS_YAML, encoding="utf-8")
    return path


class TestShippedConfig:

    def test_config_dir_exists(self):
        assert CONFIG_DIR.exists()

    def test_shipped_networks(self, monkeypatch):
        for name in ("base", "bsc", "tempo"):
            monkeypatch.delenv(rpc_env_key(name), raising=False)
        networks = load_networks()
        assert list(networks) == ["base", "bsc", "tempo"]
        assert networks["base"].decimals == 6
        assert networks["base"].use_builder_code is True
        assert networks["bsc"].decimals == 18
        assert networks["tempo"].chain_id == 42431

    def test_shipped_engine_settings(self, monkeypatch):
        monkeypatch.delenv("BUILDER_CODE", raising=False)
        settings = load_engine_settings()
        assert settings.rpc_retry_count == 3
        assert settings.builder_code == "bc_qt9yxo1d"


class TestLoadNetworks:

    def test_file_order_preserved(self, networks_file, monkeypatch):
        monkeypatch.delenv("XNET_RPC_URL", raising=False)
        networks = load_networks(networks_file)
        assert list(networks) == ["xnet", "ynet"]

    def test_env_rpc_prepended(self, networks_file, monkeypatch):
        monkeypatch.setenv("XNET_RPC_URL", "https://private.example")
        networks = load_networks(networks_file)
        assert networks["xnet"].rpcs == (
            "https://private.example",
            "https://x-0.example",
            "https://x-1.example",
        )

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_networks(path)

    def test_entry_must_be_mapping(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("xnet: [1, 2]\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_networks(path)


class TestEngineSettings:

    def test_missing_file_uses_defaults(self, tmp_path, monkeypatch):
        monkeypatch.delenv("BUILDER_CODE", raising=False)
        settings = load_engine_settings(tmp_path / "missing.yaml")
        assert settings.gas_margin_divisor == 5

    def test_overrides(self, tmp_path, monkeypatch):
        monkeypatch.delenv("BUILDER_CODE", raising=False)
        path = tmp_path / "engine.yaml"
        path.write_text("rpc_retry_count: 2\nretry_failed_claimants: true\n", encoding="utf-8")
        settings = load_engine_settings(path)
        assert settings.rpc_retry_count == 2
        assert settings.retry_failed_claimants is True

    def test_unknown_key_rejected(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("rpc_retries: 2\n", encoding="utf-8")
        with pytest.raises(ConfigError) as exc_info:
            load_engine_settings(path)
        assert "rpc_retries" in exc_info.value.details["unknown"]

    def test_builder_code_env_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("BUILDER_CODE", "bc_custom")
        settings = load_engine_settings(tmp_path / "missing.yaml")
        assert settings.builder_code == "bc_custom"

    def test_builder_code_too_long(self, tmp_path, monkeypatch):
        monkeypatch.setenv("BUILDER_CODE", "b" * 40)
        with pytest.raises(ConfigError):
            load_engine_settings(tmp_path / "missing.yaml")


class TestSecretsAndDirectory:

    def test_operator_key_missing(self, monkeypatch):
        monkeypatch.delenv("OPERATOR_PRIVATE_KEY", raising=False)
        with pytest.raises(ConfigError) as exc_info:
            get_operator_key()
        assert exc_info.value.code == ErrorCode.MISSING_OPERATOR_KEY

    def test_operator_key_from_env(self, monkeypatch):
        monkeypatch.setenv("OPERATOR_PRIVATE_KEY", "0x" + "ab" * 32)
        assert get_operator_key() == "0x" + "ab" * 32

    def test_directory_missing_file(self, tmp_path):
        assert load_directory(tmp_path / "none.yaml") == {}

    def test_shipped_directory(self):
        data = load_directory()
        assert "tags" in data
