from __future__ import annotations

import logging

from ..domain.decoding import decode_transfer
from ..domain.errors import DecodeError
from ..domain.models import (
    EncodeResult, RawRecord, RawTransaction, RawTransferLog, TransactionRow, TransferRow,
)
from ..ports.storage import TokenCache

logger = logging.getLogger(__name__)


def transaction_row(tx: RawTransaction) -> TransactionRow:
    return TransactionRow(
        tx_hash=tx.tx_hash,
        nonce=tx.nonce,
        sender=tx.sender,
        receiver=tx.receiver,          # None -> empty cell
        block_number=tx.block_number,
        timestamp=tx.timestamp,
    )


def normalize(value: int, multiplier: int) -> float:
    # int / int is correctly rounded to the nearest float
    return value / multiplier


class RecordEncoder:
    def __init__(self, cache: TokenCache) -> None:
        self.cache = cache

    async def encode(self, record: RawRecord) -> EncodeResult:
        if isinstance(record, RawTransaction):
            return EncodeResult(row=transaction_row(record))
        if isinstance(record, RawTransferLog):
            return await self._encode_transfer(record)
        raise TypeError(f"unsupported record type {type(record).__name__}")

    async def _encode_transfer(self, log: RawTransferLog) -> EncodeResult:
        try:
            transfer = decode_transfer(log)
        except DecodeError as e:
            logger.warning("parse transfer event %s#%d: %s", log.tx_hash, log.log_index, e)
            return EncodeResult(dropped_reason="decode")

        try:
            info = await self.cache.lookup(log.address)
        except Exception as e:
            logger.warning("get token info %s for %s#%d: %s", log.address, log.tx_hash, log.log_index, e)
            return EncodeResult(dropped_reason="token_metadata")

        return EncodeResult(row=TransferRow(
            token=info.address,
            symbol=info.symbol,
            from_=transfer.sender,
            to=transfer.receiver,
            value=str(transfer.value),
            normalized_value=normalize(transfer.value, info.multiplier),
            tx_hash=log.tx_hash,
            block_number=log.block_number,
            event_id=log.log_index,
        ))
