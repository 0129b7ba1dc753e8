"""
Configuration loading for the trading core.

Settings live in a JSON file (``config/hypernova.json`` by default).  Any
key missing from the file falls back to ``DEFAULT_CONFIG``; nested sections
are merged key-by-key so a file only needs to carry what it overrides::

    {
        "log_level": "DEBUG",
        "chains": {
            "evm": {"rpc_url": "https://sepolia.example.org"}
        }
    }
"""

from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Optional

ROOT = Path(__file__).resolve().parents[2]
DEFAULT_CONFIG_PATH = ROOT / "config" / "hypernova.json"

DEFAULT_CONFIG: dict = {
    "log_level": "INFO",
    "data_paths": {
        "log_path": "logs",
    },
    "market_data": {
        "api_url": "https://api.hypernova.market",
        "ws_url": "wss://hypernova.market/ws",
        "max_trades": 100,
        "max_candles": 500,
        "candle_interval_seconds": 60,
        "request_timeout": 10,
    },
    "fees": {
        "debounce_seconds": 0.5,
        "refresh_seconds": 5.0,
        "fee_retries": 0,
    },
    "chains": {
        "cosmos": {
            "rpc_url": "https://rpc.hypernova.market",
            "lcd_url": "https://lcd.hypernova.market",
            "chain_id": "hyper-nova",
            "market_contract": "",
            "denom": "unova",
            "denom_decimals": 6,
            "fee_currency": "NOVA",
            "gas_price": 0.025,
            "gas_adjustment": 1.3,
            "fallback_gas": 300_000,
            "amount_decimals": 6,
            "request_timeout": 10,
        },
        "evm": {
            "rpc_url": "https://rpc.ankr.com/eth_sepolia",
            "market_contract": "",
            "fee_currency": "ETH",
            "amount_decimals": 18,
            "fallback_gas": 250_000,
            "fallback_gas_price_gwei": 30,
            "receipt_poll_interval": 2.0,
            "request_timeout": 10,
        },
        "solana": {
            "rpc_url": "https://api.devnet.solana.com",
            "program_id": "",
            "market_account": "",
            "fee_currency": "SOL",
            "amount_decimals": 9,
            "base_fee_lamports": 5000,
            "compute_unit_limit": 200_000,
            "fallback_priority_micro_lamports": 10_000,
            "confirm_poll_interval": 1.0,
            "request_timeout": 10,
        },
    },
}


def _deep_merge(base: dict, override: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[str | Path] = None) -> dict:
    """Load configuration from JSON file and merge it over the defaults.

    Args:
        config_path: Path to config JSON file. ``None`` uses
            ``config/hypernova.json`` at the project root, or the built-in
            defaults when that file is not present (an installed package).

    Returns:
        Dictionary with configuration parameters

    Raises:
        FileNotFoundError: If an explicit path does not exist
        json.JSONDecodeError: If the file is not valid JSON
    """
    if config_path is None:
        if not DEFAULT_CONFIG_PATH.is_file():
            return copy.deepcopy(DEFAULT_CONFIG)
        path = DEFAULT_CONFIG_PATH
    else:
        path = Path(config_path)
    with open(path, 'r') as f:
        raw = json.load(f)
    return _deep_merge(DEFAULT_CONFIG, raw or {})
