from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Final

from ..domain.models import EncodeResult, RawRecord, SinkStats
from ..ports.storage import RowSink

logger = logging.getLogger(__name__)

CHANNEL_SIZE = 256


class _Closed:
    def __repr__(self) -> str: return "<closed>"

_CLOSED: Final = _Closed()


class RecordChannel:
    """
    Bounded FIFO between the scanner and the sink. `put` blocks while the
    queue is full; `close` enqueues a sentinel behind every record already
    put, so the consumer drains them all before it sees the end.
    """
    def __init__(self, maxsize: int = CHANNEL_SIZE) -> None:
        self._q: asyncio.Queue[RawRecord | _Closed] = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self.pushed = 0

    async def put(self, record: RawRecord) -> None:
        if self._closed:
            raise RuntimeError("put on closed channel")
        await self._q.put(record)
        self.pushed += 1

    async def close(self) -> None:
        if self._closed:
            raise RuntimeError("channel closed twice")
        self._closed = True
        await self._q.put(_CLOSED)

    async def get(self) -> RawRecord | None:
        """Next record, or None once the channel is closed and drained."""
        item = await self._q.get()
        return None if isinstance(item, _Closed) else item


async def run_sink(
    channel: RecordChannel,
    encode: Callable[[RawRecord], Awaitable[EncodeResult]],
    sink: RowSink,
) -> SinkStats:
    stats = SinkStats()
    try:
        while True:
            record = await channel.get()
            if record is None:
                break
            stats.received += 1
            try:
                res = await encode(record)
            except Exception as e:
                logger.error("encode record %r: %s", record, e)
                stats.dropped += 1
                stats.drop_reasons["encode_error"] += 1
                continue
            if not res.ok:
                stats.dropped += 1
                stats.drop_reasons[res.dropped_reason or "unknown"] += 1
                continue
            try:
                sink.write_row(res.row)
            except Exception as e:
                logger.error("write row %r: %s", res.row, e)
                stats.write_errors += 1
                continue
            stats.written += 1
    finally:
        sink.close()
    logger.info("sink drained: written=%d dropped=%d write_errors=%d",
                stats.written, stats.dropped, stats.write_errors)
    return stats
