from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ..config import Settings, get_settings
from ..errors import InsufficientDataError, SourceUnavailableError, TokenNotFoundError
from ..repositories import TokenRepository
from ..timeutils import utcnow
from ..valuation import TokenInfo, ValuationService

router = APIRouter()
logger = logging.getLogger("staking.api")


def get_valuation_service(request: Request) -> ValuationService:
    service = getattr(request.app.state, "valuation_service", None)
    if service is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Valuation service unavailable")
    return service


def get_token_repository(request: Request) -> TokenRepository:
    repository = getattr(request.app.state, "token_repository", None)
    return repository or TokenRepository()


async def _active_tokens(repository: TokenRepository) -> list[TokenInfo]:
    try:
        return await repository.fetch_active_tokens()
    except RuntimeError as exc:
        logger.error("Error fetching tokens: %s", exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Failed to fetch tokens") from exc


async def _lookup_token(repository: TokenRepository, symbol: str) -> TokenInfo:
    try:
        return await repository.lookup_token(symbol)
    except TokenNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Token not found or not supported"
        ) from exc
    except RuntimeError as exc:
        logger.error("Error looking up token %s: %s", symbol, exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Token registry unavailable") from exc


@router.get("/health", summary="Service health check")
def health(settings: Settings = Depends(get_settings)) -> dict[str, str]:
    return {
        "service": settings.service_name,
        "status": "ok",
        "time": utcnow().isoformat(),
    }


@router.get("/tokens", summary="List tracked LST tokens")
async def list_tokens(repository: TokenRepository = Depends(get_token_repository)) -> dict:
    tokens = await _active_tokens(repository)
    return {"tokens": [token.to_dict() for token in tokens], "count": len(tokens)}


@router.get("/token/{symbol}/history", summary="One-year price history for a token")
async def get_token_history(
    symbol: str,
    repository: TokenRepository = Depends(get_token_repository),
    service: ValuationService = Depends(get_valuation_service),
) -> dict:
    await _lookup_token(repository, symbol)
    try:
        history = await service.get_price_history(symbol)
    except SourceUnavailableError as exc:
        logger.error("Error fetching price history for %s: %s", symbol, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to fetch price history") from exc
    return {
        "token_symbol": symbol,
        "price_history": [point.to_dict() for point in history],
        "count": len(history),
    }


@router.get("/token/{symbol}/valuation", summary="Valuation metrics for a token")
async def get_token_valuation(
    symbol: str,
    repository: TokenRepository = Depends(get_token_repository),
    service: ValuationService = Depends(get_valuation_service),
) -> dict:
    token = await _lookup_token(repository, symbol)
    try:
        valuation = await service.get_valuation(symbol, token)
    except InsufficientDataError as exc:
        raise HTTPException(status_code=422, detail="Cannot value this token yet") from exc
    except SourceUnavailableError as exc:
        logger.error("Error getting valuation for %s: %s", symbol, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to calculate valuation") from exc
    return valuation.to_dict()


@router.get("/valuations", summary="Valuation metrics for all tracked tokens")
async def list_valuations(
    repository: TokenRepository = Depends(get_token_repository),
    service: ValuationService = Depends(get_valuation_service),
) -> dict:
    tokens = await _active_tokens(repository)
    valuations = await service.get_all_valuations(tokens)
    return {"valuations": [valuation.to_dict() for valuation in valuations], "count": len(valuations)}


@router.post("/cache/refresh", summary="Drop cached artifacts for all tracked tokens")
async def refresh_cache(
    repository: TokenRepository = Depends(get_token_repository),
    service: ValuationService = Depends(get_valuation_service),
) -> dict:
    tokens = await _active_tokens(repository)
    for token in tokens:
        await service.invalidate(token.symbol)
    symbols = [token.symbol for token in tokens]
    logger.info("Cache refreshed for %d tokens", len(symbols))
    return {"message": "Cache refreshed", "invalidated": symbols}
