from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Protocol

from eth_account import Account
from eth_utils import to_checksum_address

from ..domain.decoding import TRANSFER_T0, ZERO_ADDRESS, address_to_topic, hex_to_int
from ..domain.errors import RPCError, ScanError
from ..domain.models import WINDOW_SIZE, BlockRange, RawRecord, RawTransaction, RawTransferLog
from ..domain.value_types import Address
from ..ports.rpc import LedgerClient
from .planning import count_windows, iter_windows

logger = logging.getLogger(__name__)

Emit = Callable[[RawRecord], Awaitable[None]]
Progress = Callable[[int], None]

_FETCH_ERRORS = (RPCError, KeyError, ValueError, TypeError)


class EventSource(Protocol):
    async def scan(self, bounds: BlockRange, target: Address, emit: Emit,
                   cancel: asyncio.Event | None = None) -> int:
        """Emit every matching record in `bounds`; return how many were emitted."""

    def total_units(self, bounds: BlockRange) -> int:
        """Progress units the scan will report for `bounds`."""


def resolve_sender(tx: dict[str, Any]) -> Address:
    """
    Node-reported `from` when present, otherwise recover the signer from the
    raw signed payload (EIP-155 / typed transactions carry their chain id).
    Failure yields the zero address.
    """
    try:
        frm = tx.get("from")
        if frm:
            return Address(to_checksum_address(frm))
        raw = tx.get("raw")
        if not raw:
            raise ValueError("transaction has neither 'from' nor a raw signed payload")
        return Address(to_checksum_address(Account.recover_transaction(raw)))
    except Exception as e:
        logger.error("failed to get tx sender (tx_hash=%s): %s", tx.get("hash"), e)
        return ZERO_ADDRESS


class TransactionSource:
    """One eth_getBlockByNumber per height, strictly sequential."""

    def __init__(self, rpc: LedgerClient, progress: Progress | None = None) -> None:
        self.rpc = rpc
        self.progress = progress

    def total_units(self, bounds: BlockRange) -> int:
        return bounds.span()

    async def scan(self, bounds: BlockRange, target: Address, emit: Emit,
                   cancel: asyncio.Event | None = None) -> int:
        target_l = target.lower()
        emitted = 0
        for height in range(bounds.start, bounds.end + 1):
            if cancel is not None and cancel.is_set():
                logger.info("transaction scan cancelled before block %d", height)
                return emitted
            try:
                block = await self.rpc.get_block(height)
                block_number = hex_to_int(block["number"])
                timestamp = hex_to_int(block["timestamp"])
                txs = block.get("transactions") or []
            except _FETCH_ERRORS as e:
                raise ScanError(height, height, e) from e

            for tx in txs:
                if not isinstance(tx, dict):
                    # hash-only transaction list; the node ignored full=true
                    raise ScanError(height, height, ValueError("block returned without transaction objects"))
                sender = resolve_sender(tx)
                to = tx.get("to")
                if sender.lower() != target_l and not (to and to.lower() == target_l):
                    continue
                await emit(RawTransaction(
                    tx_hash=str(tx["hash"]).lower(),
                    nonce=hex_to_int(tx.get("nonce")),
                    sender=sender,
                    receiver=Address(to_checksum_address(to)) if to else None,
                    block_number=block_number,
                    timestamp=timestamp,
                ))
                emitted += 1
            if self.progress: self.progress(1)
        return emitted


class TransferSource:
    """Two eth_getLogs per window: target as Transfer sender, target as receiver."""

    def __init__(self, rpc: LedgerClient, *, window_size: int = WINDOW_SIZE,
                 progress: Progress | None = None) -> None:
        self.rpc = rpc
        self.window_size = window_size
        self.progress = progress

    def total_units(self, bounds: BlockRange) -> int:
        if bounds.start == bounds.end:
            return 0
        return count_windows(bounds, self.window_size)

    async def scan(self, bounds: BlockRange, target: Address, emit: Emit,
                   cancel: asyncio.Event | None = None) -> int:
        if bounds.start == bounds.end:
            logger.info("empty transfer range %d-%d, nothing to query", bounds.start, bounds.end)
            return 0

        target_topic = address_to_topic(target)
        as_sender = [TRANSFER_T0, target_topic]
        as_receiver = [TRANSFER_T0, None, target_topic]
        emitted = 0
        for fb, tb in iter_windows(bounds, self.window_size):
            if cancel is not None and cancel.is_set():
                logger.info("transfer scan cancelled before window %d-%d", fb, tb)
                return emitted
            try:
                sent = await self.rpc.get_logs(as_sender, fb, tb)
                received = await self.rpc.get_logs(as_receiver, fb, tb)
            except _FETCH_ERRORS as e:
                raise ScanError(fb, tb, e) from e

            # self-transfers match both queries
            logs = sent + [lg for lg in received if not _is_from(lg, target_topic)]
            logs.sort(key=lambda lg: (lg.block_number, lg.log_index))
            for lg in logs:
                await emit(lg)
            emitted += len(logs)
            logger.debug("window %d-%d: %d sent, %d received", fb, tb, len(sent), len(received))
            if self.progress: self.progress(1)
        return emitted


def _is_from(log: RawTransferLog, target_topic: str) -> bool:
    return len(log.topics) > 1 and log.topics[1] == target_topic
