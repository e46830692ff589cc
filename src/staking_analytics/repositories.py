from __future__ import annotations

import logging
from typing import Any, Mapping

from .db import Database, get_db
from .errors import TokenNotFoundError
from .valuation.models import TokenInfo

logger = logging.getLogger("staking.repositories")

TOKENS_TABLE = "tokens"
_TOKEN_COLUMNS = "id, symbol, name, contract_address, decimals, blockchain, is_active"


def _row_to_token(row: Mapping[str, Any]) -> TokenInfo:
    return TokenInfo(
        id=row["id"],
        symbol=row["symbol"],
        name=row["name"] or "",
        contract_address=row["contract_address"],
        decimals=int(row["decimals"]),
        blockchain=row["blockchain"] or "ethereum",
        is_active=bool(row["is_active"]),
    )


class TokenRepository:
    """Read access to the token registry (active LSTs and their contracts)."""

    def __init__(self, db: Database | None = None) -> None:
        self._db = db or get_db()

    async def fetch_active_tokens(self) -> list[TokenInfo]:
        if not self._db.is_connected:
            raise RuntimeError("Database pool is not initialized")
        async with self._db.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT {_TOKEN_COLUMNS} FROM {TOKENS_TABLE} WHERE is_active = true ORDER BY symbol"
            )
        return [_row_to_token(row) for row in rows]

    async def lookup_token(self, symbol: str) -> TokenInfo:
        if not self._db.is_connected:
            raise RuntimeError("Database pool is not initialized")
        async with self._db.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_TOKEN_COLUMNS} FROM {TOKENS_TABLE} WHERE symbol = $1 AND is_active = true",
                symbol,
            )
        if row is None:
            logger.info("Token lookup miss for %s", symbol)
            raise TokenNotFoundError(symbol)
        return _row_to_token(row)


__all__ = ["TOKENS_TABLE", "TokenRepository"]
