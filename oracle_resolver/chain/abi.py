"""
Minimal ABI for the OracleMarkets contract.

Only the entries the resolver touches are embedded. Pass ``abi_path`` to
``load_abi`` to use a full compiled artifact instead.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

_MARKET_COMPONENTS = [
    {"name": "id", "type": "uint256"},
    {"name": "creator", "type": "address"},
    {"name": "title", "type": "string"},
    {"name": "description", "type": "string"},
    {"name": "category", "type": "string"},
    {"name": "endTime", "type": "uint256"},
    {"name": "createdAt", "type": "uint256"},
    {"name": "state", "type": "uint8"},
    {"name": "resolution", "type": "uint8"},
    {"name": "oddsYes", "type": "uint256"},
    {"name": "oddsNo", "type": "uint256"},
    {"name": "totalYesPool", "type": "uint256"},
    {"name": "totalNoPool", "type": "uint256"},
]

ORACLE_MARKETS_ABI: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "getMarket",
        "stateMutability": "view",
        "inputs": [{"name": "marketId", "type": "uint256"}],
        "outputs": [
            {
                "name": "",
                "type": "tuple",
                "internalType": "struct OracleMarkets.Market",
                "components": _MARKET_COMPONENTS,
            }
        ],
    },
    {
        "type": "function",
        "name": "marketCount",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "resolveMarket",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "marketId", "type": "uint256"},
            {"name": "outcome", "type": "uint8"},
            {"name": "evidenceHash", "type": "bytes32"},
        ],
        "outputs": [],
    },
    {
        "type": "event",
        "name": "MarketEnded",
        "anonymous": False,
        "inputs": [
            {"name": "marketId", "type": "uint256", "indexed": True},
            {"name": "timestamp", "type": "uint256", "indexed": False},
        ],
    },
]


def load_abi(abi_path: Optional[str] = None) -> list[dict[str, Any]]:
    """
    Return the contract ABI.

    ``abi_path`` may point to a Hardhat artifact (``{"abi": [...]}``) or a
    bare ABI list; without it the embedded minimal ABI is used.
    """
    if not abi_path:
        return ORACLE_MARKETS_ABI
    data = json.loads(Path(abi_path).read_text())
    if isinstance(data, dict):
        data = data.get("abi", [])
    if not isinstance(data, list):
        raise ValueError(f"No ABI found in {abi_path}")
    return data


def has_function(abi: list[dict[str, Any]], name: str) -> bool:
    return any(e.get("type") == "function" and e.get("name") == name for e in abi)
