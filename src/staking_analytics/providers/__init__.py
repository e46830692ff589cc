from .coingecko import CoinGeckoClient, CoinGeckoConfig, CoinGeckoError, PriceSeriesSource
from .supply import ERC20SupplySource, SupplySource, SupplySourceError

__all__ = [
    "CoinGeckoClient",
    "CoinGeckoConfig",
    "CoinGeckoError",
    "PriceSeriesSource",
    "ERC20SupplySource",
    "SupplySource",
    "SupplySourceError",
]
