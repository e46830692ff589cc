"""API router definitions for the staking analytics service."""

from fastapi import APIRouter

from .routes import router as core_router

api_router = APIRouter()
api_router.include_router(core_router, tags=["tokens"])

__all__ = ["api_router"]
