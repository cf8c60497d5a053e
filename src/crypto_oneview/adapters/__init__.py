"""Balance source adapters for exchanges and chains."""

# Import all adapters to trigger auto-registration
from crypto_oneview.adapters.base import (
    AdapterError,
    BaseBalanceAdapter,
    PayloadDecodeError,
    UnsupportedSourceError,
    sanitize_error_message,
)
from crypto_oneview.adapters.binance import (
    BinanceCoinFuturesAdapter,
    BinanceEarnFlexibleAdapter,
    BinanceEarnLockedAdapter,
    BinanceFundingAdapter,
    BinanceSpotAdapter,
    BinanceUsdtFuturesAdapter,
)
from crypto_oneview.adapters.chains import BitcoinAdapter, CardanoAdapter, EthereumAdapter
from crypto_oneview.adapters.okx import (
    OKXFundingAdapter,
    OKXSavingsAdapter,
    OKXStakingAdapter,
    OKXTradingAdapter,
)

__all__ = [
    "AdapterError",
    "BaseBalanceAdapter",
    "BinanceCoinFuturesAdapter",
    "BinanceEarnFlexibleAdapter",
    "BinanceEarnLockedAdapter",
    "BinanceFundingAdapter",
    "BinanceSpotAdapter",
    "BinanceUsdtFuturesAdapter",
    "BitcoinAdapter",
    "CardanoAdapter",
    "EthereumAdapter",
    "OKXFundingAdapter",
    "OKXSavingsAdapter",
    "OKXStakingAdapter",
    "OKXTradingAdapter",
    "PayloadDecodeError",
    "UnsupportedSourceError",
    "sanitize_error_message",
]
