"""Exchange, chain, and pricing configuration loader."""

from decimal import Decimal
from functools import cache
from pathlib import Path
from typing import Any

import yaml


@cache
def load_sources() -> dict[str, Any]:
    """
    Load static source configuration from sources.yaml.

    Returns
    -------
    dict[str, Any]
        Configuration including exchanges, chains, wallet sources, and pricing

    """
    path = Path(__file__).parent / "sources.yaml"
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f)


def get_exchange_config(exchange: str) -> dict[str, Any]:
    """
    Get configuration for a specific exchange.

    Parameters
    ----------
    exchange : str
        Exchange identifier (e.g., 'binance', 'okx')

    Returns
    -------
    dict[str, Any]
        Exchange configuration including display name and account types

    Raises
    ------
    KeyError
        If exchange is not found in configuration

    """
    return load_sources()["exchanges"][exchange]


def get_all_supported_exchanges() -> list[str]:
    """List all configured exchange identifiers."""
    return list(load_sources()["exchanges"].keys())


def get_account_type_label(exchange: str, account_type: str) -> str:
    """
    Get the display label of an exchange account type.

    Falls back to the raw account type when the exchange or type is unknown.

    """
    exchanges = load_sources()["exchanges"]
    return exchanges.get(exchange, {}).get("account_types", {}).get(account_type, account_type)


def get_chain_config(chain: str) -> dict[str, Any]:
    """
    Get configuration for a specific chain.

    Parameters
    ----------
    chain : str
        Chain identifier (e.g., 'BTC', 'ETH')

    Returns
    -------
    dict[str, Any]
        Chain configuration

    Raises
    ------
    KeyError
        If chain is not found in configuration

    """
    return load_sources()["chains"][chain]


def get_all_supported_chains() -> list[str]:
    """List all configured chain identifiers."""
    return list(load_sources()["chains"].keys())


def get_wallet_sources() -> dict[str, str]:
    """
    Get wallet source identifiers and their display labels.

    Returns
    -------
    dict[str, str]
        Mapping of source id (e.g., 'ledger_cold') to label

    """
    return dict(load_sources()["wallet_sources"])


def get_pricing_config() -> dict[str, Any]:
    """Get the pricing section of the configuration."""
    return load_sources()["pricing"]


def get_stablecoins() -> frozenset[str]:
    """Symbols pinned to 1 USD."""
    return frozenset(get_pricing_config()["stablecoins"])


def get_quote_preference() -> list[str]:
    """Quote currencies probed in order when pricing from an exchange ticker."""
    return list(get_pricing_config()["quote_preference"])


def get_coingecko_ids() -> dict[str, str]:
    """Mapping of ticker symbol to CoinGecko coin id."""
    return dict(get_pricing_config()["coingecko_ids"])


def get_dust_threshold() -> Decimal:
    """USD value under which a priced holding is treated as dust."""
    return Decimal(str(get_pricing_config()["dust_threshold_usd"]))


def get_cache_ttl() -> int:
    """Price cache time-to-live in seconds."""
    return int(get_pricing_config()["cache_ttl_seconds"])
