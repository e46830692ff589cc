from __future__ import annotations

import logging
from typing import Any, Protocol

import aiohttp
from web3 import AsyncHTTPProvider, AsyncWeb3

from ..config import Settings, get_settings

ERC20_TOTAL_SUPPLY_ABI = [
    {
        "constant": True,
        "inputs": [],
        "name": "totalSupply",
        "outputs": [{"name": "", "type": "uint256"}],
        "payable": False,
        "stateMutability": "view",
        "type": "function",
    }
]


class SupplySourceError(RuntimeError):
    pass


class SupplySource(Protocol):
    async def fetch_total_supply(self, contract_address: str) -> int:
        ...


class ERC20SupplySource:
    """Reads raw ``totalSupply()`` from an ERC-20 contract over the deployment's RPC endpoint."""

    def __init__(self, *, settings: Settings | None = None, w3: Any | None = None) -> None:
        settings = settings or get_settings()
        self._rpc_url = settings.ethereum_rpc_url
        self._w3 = w3 or AsyncWeb3(
            AsyncHTTPProvider(
                self._rpc_url,
                request_kwargs={"timeout": aiohttp.ClientTimeout(total=settings.rpc_timeout_seconds)},
            )
        )
        self._logger = logging.getLogger("staking.providers.supply")

    @property
    def rpc_url(self) -> str:
        return self._rpc_url

    async def fetch_total_supply(self, contract_address: str) -> int:
        try:
            address = AsyncWeb3.to_checksum_address(contract_address)
            contract = self._w3.eth.contract(address=address, abi=ERC20_TOTAL_SUPPLY_ABI)
            raw_supply = await contract.functions.totalSupply().call()
        except Exception as exc:
            raise SupplySourceError(f"totalSupply call failed for {contract_address}: {exc}") from exc
        if not isinstance(raw_supply, int):
            raise SupplySourceError(f"unexpected totalSupply output for {contract_address}: {raw_supply!r}")
        self._logger.debug("totalSupply(%s) = %d", contract_address, raw_supply)
        return raw_supply


__all__ = ["ERC20_TOTAL_SUPPLY_ABI", "ERC20SupplySource", "SupplySource", "SupplySourceError"]
