"""
Configuration loader for the oracle resolver.

Reads a YAML config and injects secrets and overrides from environment
variables.
"""

import os
from typing import Optional

import yaml
from dotenv import load_dotenv

load_dotenv()

# env var -> (section, key, type)
_ENV_OVERRIDES = {
    "PUSHCHAIN_RPC": ("chain", "rpc_url", str),
    "ORACLE_MARKETS_ADDRESS": ("chain", "contract_address", str),
    "PUSHCHAIN_CHAIN_ID": ("chain", "chain_id", int),
    "PRIVATE_KEY": ("chain", "private_key", str),
    "OPENROUTER_API_KEY": ("inference", "api_key", str),
    "CONFIDENCE_THRESHOLD": ("resolution", "confidence_threshold", float),
    "MIN_ODDS": ("resolution", "min_odds", int),
    "MAX_ODDS": ("resolution", "max_odds", int),
    "COINGECKO_API": ("evidence", "coingecko_api", str),
}


def load_config(config_path: Optional[str] = "config.yaml") -> dict:
    """
    Load configuration from YAML file.

    Environment variables listed in ``_ENV_OVERRIDES`` win over the file.
    Pass ``config_path=None`` to configure from the environment alone.
    """
    config: dict = {}
    if config_path:
        with open(config_path, "r") as f:
            config = yaml.safe_load(f) or {}

    for env_name, (section, key, cast) in _ENV_OVERRIDES.items():
        raw = os.getenv(env_name)
        if raw:
            try:
                config.setdefault(section, {})[key] = cast(raw)
            except ValueError:
                raise ValueError(f"{env_name}={raw!r} is not a valid {cast.__name__}")

    validate_config(config)
    return config


def validate_config(config: dict) -> None:
    """Raise ValueError for missing required settings or inconsistent bounds."""
    if not config.get("inference", {}).get("api_key"):
        raise ValueError("OPENROUTER_API_KEY not found in environment")
    if not config.get("chain", {}).get("contract_address"):
        raise ValueError("ORACLE_MARKETS_ADDRESS not found in environment or config")

    res_cfg = config.get("resolution", {})
    threshold = res_cfg.get("confidence_threshold", 0.7)
    if not 0.0 <= threshold <= 1.0:
        raise ValueError(f"confidence_threshold must be in [0, 1], got {threshold}")
    min_odds = res_cfg.get("min_odds", 9000)
    max_odds = res_cfg.get("max_odds", 9500)
    if min_odds > max_odds:
        raise ValueError(f"min_odds ({min_odds}) exceeds max_odds ({max_odds})")
