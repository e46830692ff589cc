from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from ..config import Settings, get_settings
from ..valuation.models import PricePoint


class CoinGeckoError(RuntimeError):
    pass


class PriceSeriesSource(Protocol):
    async def fetch_price_series(self, symbol: str) -> list[PricePoint]:
        ...


@dataclass(slots=True)
class CoinGeckoConfig:
    base_url: str = "https://api.coingecko.com/api/v3"
    api_key: str | None = None
    timeout_seconds: float = 30.0
    vs_currency: str = "eth"
    history_days: int = 365
    symbol_map: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: Settings) -> "CoinGeckoConfig":
        return cls(
            base_url=settings.coingecko_base_url.rstrip("/"),
            api_key=settings.coingecko_api_key,
            timeout_seconds=settings.coingecko_timeout_seconds,
            vs_currency=settings.coingecko_vs_currency,
            history_days=settings.coingecko_history_days,
            symbol_map=dict(settings.coingecko_symbol_map),
        )


class CoinGeckoClient:
    """
    Fetches the trailing daily price series of a token from the CoinGecko
    ``market_chart`` endpoint. Samples come back in whatever order the API
    returns them; malformed rows are dropped.
    """

    def __init__(
        self,
        config: CoinGeckoConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config or CoinGeckoConfig.from_settings(get_settings())
        headers = {"Accept": "application/json", "User-Agent": "staking-analytics/0.1"}
        self._client = client or httpx.AsyncClient(timeout=self._config.timeout_seconds, headers=headers)
        self._logger = logging.getLogger("staking.providers.coingecko")

    def coin_id(self, symbol: str) -> str:
        coin_id = self._config.symbol_map.get(symbol)
        if coin_id is None:
            raise CoinGeckoError(f"unsupported token symbol: {symbol}")
        return coin_id

    async def fetch_price_series(self, symbol: str) -> list[PricePoint]:
        coin_id = self.coin_id(symbol)
        params: dict[str, Any] = {
            "vs_currency": self._config.vs_currency,
            "days": self._config.history_days,
            "interval": "daily",
        }
        if self._config.api_key:
            params["x_cg_demo_api_key"] = self._config.api_key
        url = f"{self._config.base_url}/coins/{coin_id}/market_chart"
        try:
            response = await self._client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise CoinGeckoError(f"request for {symbol} failed: {exc}") from exc
        if response.status_code != 200:
            raise CoinGeckoError(
                f"CoinGecko API error for {symbol} (status {response.status_code}): {response.text[:200]}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise CoinGeckoError(f"failed to decode CoinGecko response for {symbol}") from exc

        points = _parse_prices(payload.get("prices") if isinstance(payload, dict) else None)
        self._logger.info("Fetched %d price points for %s (%s)", len(points), symbol, coin_id)
        return points

    async def close(self) -> None:
        await self._client.aclose()


def _parse_prices(rows: Any) -> list[PricePoint]:
    if not isinstance(rows, list):
        return []
    points: list[PricePoint] = []
    for row in rows:
        if not isinstance(row, (list, tuple)) or len(row) < 2:
            continue
        timestamp, price = row[0], row[1]
        if not isinstance(timestamp, (int, float)) or not isinstance(price, (int, float)):
            continue
        points.append(PricePoint(timestamp=int(timestamp), price=float(price)))
    return points


__all__ = ["CoinGeckoClient", "CoinGeckoConfig", "CoinGeckoError", "PriceSeriesSource"]
