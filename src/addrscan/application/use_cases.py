from __future__ import annotations

import asyncio
import logging
import signal
from typing import Callable, Protocol

from addrscan.adapters.csv_sink import CsvRowSink
from addrscan.adapters.rpc_httpx import HttpxRPC
from addrscan.adapters.token_cache_json import JsonTokenCache
from addrscan.application.encoding import RecordEncoder
from addrscan.application.pipeline import CHANNEL_SIZE, RecordChannel, run_sink
from addrscan.application.planning import resolve_block_range
from addrscan.application.sources import EventSource, TransactionSource, TransferSource
from addrscan.config import CollectorConfig
from ..domain.errors import ScanError
from ..domain.models import PipelineState, RunSummary
from ..domain.value_types import Address, Mode
from ..ports.rpc import LedgerClient
from ..ports.storage import RowSink, TokenCache

logger = logging.getLogger(__name__)


class ScanProgress(Protocol):
    def start(self, total: int, description: str) -> None: ...
    def advance(self, n: int = 1) -> None: ...


def make_source(mode: Mode, rpc: LedgerClient, progress: ScanProgress | None = None) -> EventSource:
    advance = progress.advance if progress else None
    if mode == "transfers":
        return TransferSource(rpc, progress=advance)
    return TransactionSource(rpc, progress=advance)


class _Lifecycle:
    def __init__(self, on_state: Callable[[PipelineState], None] | None) -> None:
        self.state = PipelineState.INIT
        self._on_state = on_state

    def to(self, state: PipelineState) -> None:
        logger.info("pipeline %s -> %s", self.state.value, state.value)
        self.state = state
        if self._on_state: self._on_state(state)


def _install_cancel_handlers(cancel: asyncio.Event) -> list[signal.Signals]:
    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []

    def _on_signal(sig: signal.Signals) -> None:
        if not cancel.is_set():
            logger.warning("received %s, stopping after the current step", sig.name)
        cancel.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _on_signal, sig)
            installed.append(sig)
        except (NotImplementedError, RuntimeError, ValueError):
            logger.debug("cannot install handler for %s on this platform", sig.name)
    return installed


def _remove_cancel_handlers(installed: list[signal.Signals]) -> None:
    loop = asyncio.get_running_loop()
    for sig in installed:
        loop.remove_signal_handler(sig)


async def collect_address_activity(
    *,
    rpc: LedgerClient,
    cache: TokenCache,
    address: Address,
    from_block: int,
    to_block: int,
    mode: Mode,
    open_sink: Callable[[Mode], RowSink],
    channel_size: int = CHANNEL_SIZE,
    cancel: asyncio.Event | None = None,
    handle_signals: bool = True,
    progress: ScanProgress | None = None,
    on_state: Callable[[PipelineState], None] | None = None,
) -> RunSummary:
    """
    INIT -> CONNECTED -> SCANNING -> DRAINING -> STOPPED.

    Startup failures (connectivity, head query, cache file, sink open) raise
    before anything is scanned. Once scanning, every exit path closes the
    channel exactly once, waits for the sink, saves the token cache and
    closes the RPC client before STOPPED is reported.
    A mid-scan RPC failure is reported in RunSummary.error.
    """
    life = _Lifecycle(on_state)
    cancel = cancel or asyncio.Event()

    chain_id = await rpc.chain_id()
    logger.info("connected (chain_id=%d)", chain_id)
    life.to(PipelineState.CONNECTED)

    bounds = await resolve_block_range(rpc, from_block, to_block)
    cache.load()
    source = make_source(mode, rpc, progress)
    summary = RunSummary(mode=mode, from_block=bounds.start, to_block=bounds.end)
    sink = open_sink(mode)

    channel = RecordChannel(channel_size)
    encoder = RecordEncoder(cache)
    sink_task = asyncio.create_task(run_sink(channel, encoder.encode, sink))
    installed = _install_cancel_handlers(cancel) if handle_signals else []
    if progress:
        progress.start(source.total_units(bounds), f"{bounds.start:,}-{bounds.end:,}")

    life.to(PipelineState.SCANNING)
    logger.info("scanning %s of %s in blocks %d-%d", mode, address, bounds.start, bounds.end)
    try:
        await source.scan(bounds, address, channel.put, cancel)
    except ScanError as e:
        logger.error("scan aborted: %s", e)
        summary.error = str(e)
    finally:
        life.to(PipelineState.DRAINING)
        await channel.close()
        stats = await sink_task
        cache.save()
        await rpc.aclose()
        if installed: _remove_cancel_handlers(installed)
        life.to(PipelineState.STOPPED)

    summary.records_emitted = channel.pushed
    summary.rows_written = stats.written
    summary.rows_dropped = stats.dropped + stats.write_errors
    summary.cancelled = cancel.is_set()
    if stats.drop_reasons:
        logger.info("dropped records by reason: %s", dict(stats.drop_reasons))
    return summary


async def run_collector(
    cfg: CollectorConfig,
    *,
    progress: ScanProgress | None = None,
    cancel: asyncio.Event | None = None,
) -> RunSummary:
    """Wire the httpx RPC, the JSON token cache and the CSV sink from config."""
    rpc = HttpxRPC(cfg.rpc_url, timeout_s=cfg.timeout_s)
    try:
        cache = JsonTokenCache(rpc, cfg.tokens_file)
        return await collect_address_activity(
            rpc=rpc,
            cache=cache,
            address=Address(cfg.address),
            from_block=cfg.from_block,
            to_block=cfg.to_block,
            mode=cfg.mode,
            open_sink=lambda mode: CsvRowSink.for_mode(cfg.file_path, mode),
            channel_size=cfg.channel_size,
            cancel=cancel,
            progress=progress,
        )
    finally:
        # no-op after a full run; releases the client when startup failed
        await rpc.aclose()
        # let in-flight log records reach their handlers before exit
        if cfg.grace_period_s:
            await asyncio.sleep(cfg.grace_period_s)
