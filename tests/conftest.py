"""Shared fakes: an in-memory ledger standing in for the JSON-RPC node."""

from __future__ import annotations

from typing import Any, Sequence

import pytest

from addrscan.domain.decoding import TRANSFER_T0, address_to_topic
from addrscan.domain.errors import RPCError
from addrscan.domain.models import RawTransferLog
from addrscan.domain.value_types import Address, Topic

TARGET = Address("0x1111111111111111111111111111111111111111")
OTHER = Address("0x2222222222222222222222222222222222222222")
THIRD = Address("0x3333333333333333333333333333333333333333")
TOKEN = Address("0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48")


def make_tx(tx_hash: str, sender: str, to: str | None, nonce: int = 0) -> dict[str, Any]:
    return {"hash": tx_hash, "from": sender, "to": to, "nonce": hex(nonce)}


def make_transfer(sender: str, receiver: str, value: int, *, block: int, log_index: int = 0,
                  token: str = TOKEN, tx_hash: str | None = None) -> RawTransferLog:
    return RawTransferLog(
        address=Address(token),
        topics=(TRANSFER_T0, address_to_topic(sender), address_to_topic(receiver)),
        data_hex="0x" + value.to_bytes(32, "big").hex(),
        block_number=block,
        tx_hash=tx_hash or "0x" + f"{block:04x}{log_index:04x}".rjust(64, "0"),
        log_index=log_index,
    )


class FakeLedger:
    """LedgerClient + TokenMetadataReader backed by dicts; records every call."""

    def __init__(
        self,
        *,
        head: int = 1_000,
        blocks: dict[int, list[dict[str, Any]]] | None = None,
        logs: Sequence[RawTransferLog] = (),
        symbols: dict[str, str] | None = None,
        decimals: dict[str, int] | None = None,
    ) -> None:
        self.head = head
        self.blocks = blocks or {}
        self.logs = list(logs)
        self.symbols = symbols if symbols is not None else {TOKEN: "USDC"}
        self.decimals = decimals if decimals is not None else {TOKEN: 6}
        self.fail_blocks: set[int] = set()
        self.fail_logs_from: int | None = None
        self.fail_head = False
        self.fail_connect = False
        self.closed = False
        self.calls: list[tuple] = []

    async def chain_id(self) -> int:
        self.calls.append(("chain_id",))
        if self.fail_connect:
            raise RPCError("eth_chainId", "connection refused")
        return 1

    async def latest_block(self) -> int:
        self.calls.append(("latest_block",))
        if self.fail_head:
            raise RPCError("eth_blockNumber", "boom")
        return self.head

    async def get_block(self, number: int) -> dict[str, Any]:
        self.calls.append(("get_block", number))
        if number in self.fail_blocks:
            raise RPCError("eth_getBlockByNumber", f"block {number} unavailable")
        return {
            "number": hex(number),
            "timestamp": hex(1_600_000_000 + number),
            "transactions": self.blocks.get(number, []),
        }

    async def get_logs(self, topics: Sequence[Topic | None], from_block: int, to_block: int) -> list[RawTransferLog]:
        self.calls.append(("get_logs", tuple(topics), from_block, to_block))
        if self.fail_logs_from is not None and from_block >= self.fail_logs_from:
            raise RPCError("eth_getLogs", "query returned more than 10000 results")
        out = []
        for lg in self.logs:
            if not from_block <= lg.block_number <= to_block:
                continue
            if all(t is None or (i < len(lg.topics) and lg.topics[i] == t) for i, t in enumerate(topics)):
                out.append(lg)
        return out

    async def token_symbol(self, token: Address) -> str:
        self.calls.append(("symbol", token))
        if token not in self.symbols:
            raise RPCError("eth_call", "execution reverted")
        return self.symbols[token]

    async def token_decimals(self, token: Address) -> int:
        self.calls.append(("decimals", token))
        if token not in self.decimals:
            raise RPCError("eth_call", "execution reverted")
        return self.decimals[token]

    async def aclose(self) -> None:
        self.closed = True

    def count(self, name: str) -> int:
        return sum(1 for c in self.calls if c[0] == name)


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def target_topic() -> str:
    return address_to_topic(TARGET)
