"""Data loading and configuration management."""

from crypto_oneview.data.loader import (
    get_account_type_label,
    get_all_supported_chains,
    get_all_supported_exchanges,
    get_cache_ttl,
    get_chain_config,
    get_coingecko_ids,
    get_dust_threshold,
    get_exchange_config,
    get_pricing_config,
    get_quote_preference,
    get_stablecoins,
    get_wallet_sources,
    load_sources,
)

__all__ = [
    "get_account_type_label",
    "get_all_supported_chains",
    "get_all_supported_exchanges",
    "get_cache_ttl",
    "get_chain_config",
    "get_coingecko_ids",
    "get_dust_threshold",
    "get_exchange_config",
    "get_pricing_config",
    "get_quote_preference",
    "get_stablecoins",
    "get_wallet_sources",
    "load_sources",
]
