from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="STAKING_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="allow",
    )

    service_name: str = "staking-analytics"
    service_port: int = 8080

    db_url: str | None = None
    redis_url: str | None = None
    redis_socket_timeout_seconds: float = 2.0
    db_pool_min_size: int = 1
    db_pool_max_size: int = 5

    coingecko_base_url: str = "https://api.coingecko.com/api/v3"
    coingecko_api_key: str | None = None
    coingecko_timeout_seconds: float = 30.0
    coingecko_vs_currency: str = "eth"
    coingecko_history_days: int = 365
    coingecko_symbol_map: dict[str, str] = {
        "wstETH": "wrapped-steth",
        "ankrETH": "ankreth",
        "rETH": "rocket-pool-eth",
        "wBETH": "wrapped-beacon-eth",
        "pufETH": "pufeth",
        "LSETH": "liquid-staked-ethereum",
        "RSETH": "kelp-dao-restaked-eth",
        "METH": "mantle-staked-ether",
        "CBETH": "coinbase-wrapped-staked-eth",
        "TETH": "treehouse-eth",
        "SFRXETH": "staked-frax-ether",
        "CDCETH": "crypto-com-staked-eth",
        "UNIETH": "universal-eth",
    }

    ethereum_rpc_url: str = "https://ethereum-rpc.publicnode.com"
    rpc_timeout_seconds: float = 15.0

    price_history_cache_ttl_seconds: int = 3600
    tvl_cache_ttl_seconds: int = 300
    valuation_cache_ttl_seconds: int = 600
    # 1 keeps batch valuation sequential
    valuation_batch_concurrency: int = 1

    log_level: Literal["debug", "info", "warning", "error", "critical"] = "info"
    log_dir: str | None = "logs"

    cors_allow_origins: list[str] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()


__all__ = ["Settings", "get_settings"]
