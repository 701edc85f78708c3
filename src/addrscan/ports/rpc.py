# addrscan/ports/rpc.py
from __future__ import annotations

from typing import Any, Protocol, Sequence
from ..domain.models import RawTransferLog
from ..domain.value_types import Address, Topic


class LedgerClient(Protocol):
    """Port defining the contract for an Ethereum JSON-RPC client."""

    async def latest_block(self) -> int:
        """Return the latest block number as an integer."""

    async def chain_id(self) -> int:
        """Return the chain id; used as the connectivity check."""

    async def get_block(self, number: int) -> dict[str, Any]:
        """Return the block at `number` with full transaction objects."""

    async def get_logs(
        self,
        topics: Sequence[Topic | None],
        from_block: int,
        to_block: int,
    ) -> list[RawTransferLog]:
        """Return normalized logs matching positional `topics` for [from_block, to_block] inclusive."""

    async def aclose(self) -> None: ...


class TokenMetadataReader(Protocol):
    """On-chain ERC-20 metadata reads (eth_call)."""

    async def token_symbol(self, token: Address) -> str: ...

    async def token_decimals(self, token: Address) -> int: ...
