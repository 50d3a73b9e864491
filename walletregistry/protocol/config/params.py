# MIT License
# Copyright (c) 2025 Hashborn

import json
import os
from typing import Dict, Optional
from pydantic import BaseModel, Field, ValidationError
from ..types.common import SigningMode, ConfigError

DEFAULT_LOOKBACK = 3
PRIVATE_KEY_ENV = "WALLETREGISTRY_PRIVATE_KEY"
NETWORK_ENV = "WALLETREGISTRY_NETWORK"

class NetworkConfig(BaseModel):
    network_id: str
    chain_id: int
    multisig_address: Optional[str] = None
    module_registry_address: Optional[str] = None
    signing_mode: SigningMode = SigningMode.AUTO
    # Number of past versions that get a direct upgrade path
    lookback: int = Field(default=DEFAULT_LOOKBACK, ge=0)
    # Version records: a local directory, or a remote version service
    version_dir: Optional[str] = None
    version_url: Optional[str] = None
    # Release tag the next version should reach at least
    target_version: Optional[str] = None

NETWORKS: Dict[str, NetworkConfig] = {
    "development": NetworkConfig(
        network_id="development",
        chain_id=1337,
        signing_mode=SigningMode.AUTO,
        lookback=3,
        version_dir="versions/development"
    ),
    "test": NetworkConfig(
        network_id="test",
        chain_id=5,
        signing_mode=SigningMode.AUTO,
        lookback=3,
        version_dir="versions/test"
    ),
    "staging": NetworkConfig(
        network_id="staging",
        chain_id=1,
        signing_mode=SigningMode.COLLECT,
        lookback=5,
        version_dir="versions/staging"
    ),
    "prod": NetworkConfig(
        network_id="prod",
        chain_id=1,
        signing_mode=SigningMode.MANUAL,
        lookback=5,
        version_dir="versions/prod"
    ),
}

def get_network(name: str) -> NetworkConfig:
    if name not in NETWORKS:
        raise ConfigError(f"Unknown network '{name}'. Known: {', '.join(sorted(NETWORKS))}")
    return NETWORKS[name]

def load_network_config(path: str) -> NetworkConfig:
    """Load a network configuration from a JSON file."""
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read config {path}: {e}")

    try:
        return NetworkConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Configuration {path} is not valid: {e}")

def private_key_from_env() -> Optional[bytes]:
    """Signing key from the environment (hex, optional 0x prefix)."""
    value = os.environ.get(PRIVATE_KEY_ENV)
    if not value:
        return None
    value = value[2:] if value.startswith("0x") else value
    try:
        key = bytes.fromhex(value)
    except ValueError:
        raise ConfigError(f"{PRIVATE_KEY_ENV} is not valid hex")
    if len(key) != 32:
        raise ConfigError(f"{PRIVATE_KEY_ENV} must be 32 bytes")
    return key

# Default to development unless overridden
CURRENT_NETWORK = NETWORKS.get(os.environ.get(NETWORK_ENV, "development"), NETWORKS["development"])
