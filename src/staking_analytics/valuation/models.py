from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ..timeutils import parse_datetime, utcnow


class ValuationRemark(str, Enum):
    VERY_UNDERVALUED = "Very Undervalued"
    UNDERVALUED = "Undervalued"
    FAIR_VALUE = "Fair Value"
    OVERVALUED = "Overvalued"
    VERY_OVERVALUED = "Very Overvalued"
    UNKNOWN = "Unknown"


@dataclass(slots=True, frozen=True)
class PricePoint:
    timestamp: int  # epoch millis
    price: float

    def to_dict(self) -> dict[str, Any]:
        return {"timestamp": self.timestamp, "price": self.price}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "PricePoint":
        return cls(timestamp=int(payload["timestamp"]), price=float(payload["price"]))


@dataclass(slots=True, frozen=True)
class TokenInfo:
    symbol: str
    contract_address: str
    decimals: int
    id: int | None = None
    name: str = ""
    blockchain: str = "ethereum"
    is_active: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "name": self.name,
            "contract_address": self.contract_address,
            "decimals": self.decimals,
            "blockchain": self.blockchain,
            "is_active": self.is_active,
        }


@dataclass(slots=True, frozen=True)
class TVLSnapshot:
    symbol: str
    tvl: float
    computed_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "token_symbol": self.symbol,
            "tvl": self.tvl,
            "last_updated": self.computed_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "TVLSnapshot":
        return cls(
            symbol=str(payload["token_symbol"]),
            tvl=float(payload["tvl"]),
            computed_at=parse_datetime(payload["last_updated"]),
        )


@dataclass(slots=True, frozen=True)
class ValuationResult:
    symbol: str
    price: float
    apr: float
    stability: float
    tvl: float
    remarks: ValuationRemark
    computed_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "token_symbol": self.symbol,
            "price": self.price,
            "apr": self.apr,
            "stability": self.stability,
            "tvl": self.tvl,
            "remarks": self.remarks.value,
            "last_updated": self.computed_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ValuationResult":
        return cls(
            symbol=str(payload["token_symbol"]),
            price=float(payload["price"]),
            apr=float(payload["apr"]),
            stability=float(payload["stability"]),
            tvl=float(payload["tvl"]),
            remarks=ValuationRemark(payload["remarks"]),
            computed_at=parse_datetime(payload["last_updated"]),
        )


__all__ = ["PricePoint", "TVLSnapshot", "TokenInfo", "ValuationRemark", "ValuationResult"]
