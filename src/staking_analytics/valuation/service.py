from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Callable, Sequence

from ..cache import CachedArtifact, TimedCache
from ..config import Settings, get_settings
from ..errors import SourceUnavailableError
from ..observability import record_source_failure, record_valuation
from ..timeutils import utcnow
from .engine import ValuationEngine
from .models import PricePoint, TokenInfo, TVLSnapshot, ValuationResult

if TYPE_CHECKING:
    from ..providers import PriceSeriesSource, SupplySource

PRICE_HISTORY_PREFIX = "price_history"
TVL_PREFIX = "tvl"
VALUATION_PREFIX = "valuation"


def _encode_series(series: list[PricePoint]) -> list[dict[str, object]]:
    return [point.to_dict() for point in series]


def _decode_series(payload: object) -> list[PricePoint]:
    if not isinstance(payload, list):
        raise TypeError("cached price history must be a list")
    return [PricePoint.from_dict(item) for item in payload]


def scale_supply(raw_supply: int, decimals: int) -> float:
    return float(Decimal(raw_supply) / (Decimal(10) ** decimals))


class ValuationService:
    """
    Coordinates price history, TVL and valuation lookups.

    Each artifact is served from its own cache family first; on a miss the
    upstream source is called, the result computed and written back. Price
    history is a hard dependency of a valuation while TVL degrades to zero.
    Nothing is deduplicated across concurrent requests for the same symbol.
    """

    def __init__(
        self,
        *,
        cache: TimedCache,
        price_source: "PriceSeriesSource",
        supply_source: "SupplySource",
        engine: ValuationEngine | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._price_source = price_source
        self._supply_source = supply_source
        self._engine = engine or ValuationEngine()
        self._clock = clock or utcnow
        self._logger = logging.getLogger("staking.valuation.service")
        self.price_history_cache: CachedArtifact[list[PricePoint]] = CachedArtifact(
            cache,
            prefix=PRICE_HISTORY_PREFIX,
            ttl_seconds=self.settings.price_history_cache_ttl_seconds,
            encode=_encode_series,
            decode=_decode_series,
            clock=self._clock,
        )
        self.tvl_cache: CachedArtifact[TVLSnapshot] = CachedArtifact(
            cache,
            prefix=TVL_PREFIX,
            ttl_seconds=self.settings.tvl_cache_ttl_seconds,
            encode=TVLSnapshot.to_dict,
            decode=TVLSnapshot.from_dict,
            clock=self._clock,
        )
        self.valuation_cache: CachedArtifact[ValuationResult] = CachedArtifact(
            cache,
            prefix=VALUATION_PREFIX,
            ttl_seconds=self.settings.valuation_cache_ttl_seconds,
            encode=ValuationResult.to_dict,
            decode=ValuationResult.from_dict,
            clock=self._clock,
        )

    @property
    def engine(self) -> ValuationEngine:
        return self._engine

    async def get_price_history(self, symbol: str) -> list[PricePoint]:
        async def _fetch() -> list[PricePoint]:
            try:
                return list(await self._price_source.fetch_price_series(symbol))
            except Exception as exc:
                record_source_failure("price_history")
                raise SourceUnavailableError("price history", symbol, str(exc)) from exc

        return await self.price_history_cache.get_or_fetch(symbol, _fetch)

    async def get_tvl(self, symbol: str, contract_address: str, decimals: int) -> float:
        async def _fetch() -> TVLSnapshot:
            try:
                raw_supply = await self._supply_source.fetch_total_supply(contract_address)
            except Exception as exc:
                record_source_failure("tvl")
                raise SourceUnavailableError("total supply", symbol, str(exc)) from exc
            return TVLSnapshot(
                symbol=symbol,
                tvl=scale_supply(raw_supply, decimals),
                computed_at=self._clock(),
            )

        snapshot = await self.tvl_cache.get_or_fetch(symbol, _fetch)
        return snapshot.tvl

    async def get_valuation(self, symbol: str, token: TokenInfo) -> ValuationResult:
        cached = await self.valuation_cache.read(symbol)
        if cached is not None:
            return cached

        started = time.perf_counter()
        series = await self.get_price_history(symbol)
        try:
            tvl = await self.get_tvl(symbol, token.contract_address, token.decimals)
        except SourceUnavailableError as exc:
            self._logger.warning("TVL unavailable for %s, continuing with 0: %s", symbol, exc)
            tvl = 0.0

        valuation = self._engine.compute_valuation(symbol, series, tvl, now=self._clock())
        record_valuation(valuation.remarks.value, time.perf_counter() - started)
        await self.valuation_cache.write(symbol, valuation)
        return valuation

    async def get_all_valuations(self, tokens: Sequence[TokenInfo]) -> list[ValuationResult]:
        tokens = self._unique_by_symbol(tokens)
        concurrency = max(1, self.settings.valuation_batch_concurrency)
        if concurrency == 1:
            results = [await self._try_valuation(token) for token in tokens]
        else:
            semaphore = asyncio.Semaphore(concurrency)

            async def _bounded(token: TokenInfo) -> ValuationResult | None:
                async with semaphore:
                    return await self._try_valuation(token)

            results = await asyncio.gather(*(_bounded(token) for token in tokens))
        return [result for result in results if result is not None]

    async def invalidate(self, symbol: str) -> None:
        await self.price_history_cache.invalidate(symbol)
        await self.tvl_cache.invalidate(symbol)
        await self.valuation_cache.invalidate(symbol)

    def _unique_by_symbol(self, tokens: Sequence[TokenInfo]) -> list[TokenInfo]:
        # one task per symbol, so concurrent runs never share cache keys
        seen: set[str] = set()
        unique: list[TokenInfo] = []
        for token in tokens:
            if token.symbol in seen:
                self._logger.warning("Duplicate token %s in batch, valuing it once", token.symbol)
                continue
            seen.add(token.symbol)
            unique.append(token)
        return unique

    async def _try_valuation(self, token: TokenInfo) -> ValuationResult | None:
        try:
            return await self.get_valuation(token.symbol, token)
        except Exception as exc:
            self._logger.warning("Skipping valuation for %s: %s", token.symbol, exc)
            return None


__all__ = [
    "PRICE_HISTORY_PREFIX",
    "TVL_PREFIX",
    "VALUATION_PREFIX",
    "ValuationService",
    "scale_supply",
]
