from .engine import ValuationEngine
from .models import PricePoint, TokenInfo, TVLSnapshot, ValuationRemark, ValuationResult
from .service import ValuationService

__all__ = [
    "PricePoint",
    "TVLSnapshot",
    "TokenInfo",
    "ValuationEngine",
    "ValuationRemark",
    "ValuationResult",
    "ValuationService",
]
