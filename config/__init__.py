"""
Configuration loading utilities for the payment router.

- networks.yaml: per-network endpoints, contracts, precision
- engine.yaml: retry/timeouts/gas margin/giveaway settings
- directory.yaml: MoniTag -> address directory used by the CLI

Environment overrides (loaded from .env):
- <NETWORK>_RPC_URL: prepended to that network's endpoint list
- BUILDER_CODE: attribution code appended on builder-code networks
- OPERATOR_PRIVATE_KEY: operating account key (never read from YAML)
"""

import os
from dataclasses import fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from core.constants import ErrorCode
from core.exceptions import ConfigError
from core.models import EngineSettings, NetworkConfig

CONFIG_DIR = Path(__file__).parent

OPERATOR_KEY_ENV = "OPERATOR_PRIVATE_KEY"

load_dotenv()


def load_yaml(filename: str, config_dir: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load a YAML configuration file.

    Args:
        filename: Name of file in config directory (or an absolute path)
        config_dir: Directory to resolve relative names against

    Returns:
        Parsed YAML as dict
    """
    filepath = Path(filename)
    if not filepath.is_absolute():
        filepath = (config_dir or CONFIG_DIR) / filename
    if not filepath.exists():
        raise FileNotFoundError(f"Config file not found: {filepath}")

    with open(filepath, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def rpc_env_key(network: str) -> str:
    """Environment variable that overrides a network's primary RPC."""
    return f"{network.upper()}_RPC_URL"


def load_networks(path: Optional[Path] = None) -> Dict[str, NetworkConfig]:
    """
    Load all network configs, in file order.

    File order is the stable iteration order used when scanning alternates.

    Raises:
        ConfigError: If the file is empty or an entry is invalid
    """
    data = load_yaml(str(path) if path else "networks.yaml")
    if not data:
        raise ConfigError("No networks configured")

    networks: Dict[str, NetworkConfig] = {}
    for name, entry in data.items():
        if not isinstance(entry, dict):
            raise ConfigError(f"Network {name} must be a mapping", details={"network": name})
        config = NetworkConfig.from_dict(name, entry)
        networks[name] = config.with_primary_rpc(os.getenv(rpc_env_key(name)))
    return networks


def load_engine_settings(path: Optional[Path] = None) -> EngineSettings:
    """
    Load engine settings, falling back to defaults for missing keys.

    Unknown keys are rejected so typos do not silently fall back to defaults.
    """
    filepath = path or (CONFIG_DIR / "engine.yaml")
    data: Dict[str, Any] = {}
    if Path(filepath).exists():
        data = load_yaml(str(filepath))

    known = {f.name for f in fields(EngineSettings)}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(
            f"Unknown engine settings: {', '.join(sorted(unknown))}",
            details={"unknown": sorted(unknown)},
        )

    builder_code = os.getenv("BUILDER_CODE")
    if builder_code:
        data["builder_code"] = builder_code

    return EngineSettings(**data)


def load_directory(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load the MoniTag directory (tags and platform users)."""
    filepath = path or (CONFIG_DIR / "directory.yaml")
    if not Path(filepath).exists():
        return {}
    return load_yaml(str(filepath))


def get_operator_key() -> str:
    """
    Operating account private key from the environment.

    Raises:
        ConfigError: If OPERATOR_PRIVATE_KEY is not set
    """
    key = os.getenv(OPERATOR_KEY_ENV, "")
    if not key:
        raise ConfigError(
            f"{OPERATOR_KEY_ENV} is not set",
            ErrorCode.MISSING_OPERATOR_KEY,
        )
    return key
