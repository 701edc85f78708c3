import asyncio, logging
from typing import Optional

import click
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import (
    Progress, BarColumn, TextColumn, TimeElapsedColumn,
    TimeRemainingColumn, MofNCompleteColumn, SpinnerColumn
)
from rich.table import Table

from ..adapters.token_cache_json import DEFAULT_TOKENS_FILE, read_token_file
from ..application.use_cases import run_collector
from ..config import load_config
from ..domain.errors import CollectorError
from ..domain.models import RunSummary

app = typer.Typer(help="addrscan: export an address's on-chain activity to CSV.")
console = Console(stderr=True)


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(name)s | %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


class RichScanProgress:
    """rich progress bar fed by the scan (one unit per block or per window)."""

    def __init__(self, progress: Progress, mode: str) -> None:
        self._progress = progress
        self._mode = mode
        self._task = None

    def start(self, total: int, description: str) -> None:
        self._task = self._progress.add_task(description=f"{self._mode} {description}", total=total)

    def advance(self, n: int = 1) -> None:
        if self._task is not None:
            self._progress.advance(self._task, n)


def _print_summary(s: RunSummary) -> None:
    status = "[red]failed[/]" if s.error else ("[yellow]cancelled[/]" if s.cancelled else "[green]done[/]")
    console.print(Panel.fit(
        f"{status}: {s.mode} {s.from_block:,}-{s.to_block:,}\n"
        f"[green]rows_written[/]={s.rows_written}  "
        f"[red]rows_dropped[/]={s.rows_dropped}  "
        f"records={s.records_emitted}"
        + (f"\n[red]error[/]: {s.error}" if s.error else ""),
        title="addrscan",
    ))


@app.command()
def collect(
    config: Optional[str] = typer.Option(None, "--config", help="YAML config path (default ./config.yaml if present)"),
    rpc_url: Optional[str] = typer.Option(None, "--rpc", help="RPC endpoint URL"),
    address: Optional[str] = typer.Option(None, "--address", help="Target address"),
    from_block: Optional[int] = typer.Option(None, "--from-block", help="First block; negative = genesis"),
    to_block: Optional[int] = typer.Option(None, "--to-block", help="Last block; negative = chain head"),
    transfers_only: bool = typer.Option(False, "--transfers-only", help="Export ERC-20 Transfer events instead of transactions"),
    out: Optional[str] = typer.Option(None, "--out", help="CSV output path"),
    tokens_file: Optional[str] = typer.Option(None, "--tokens-file", help="Token metadata cache (JSON)"),
    log_level: Optional[str] = typer.Option(None, "--log-level"),
):
    """Scan a block range for an address's activity and stream it to CSV."""
    try:
        cfg = load_config(
            config,
            rpc_url=rpc_url, address=address, from_block=from_block, to_block=to_block,
            transfers_only=transfers_only or None, file_path=out, tokens_file=tokens_file,
            log_level=log_level,
        )
    except CollectorError as e:
        raise click.ClickException(str(e))
    _setup_logging(cfg.log_level)
    log = logging.getLogger("addrscan")

    progress = Progress(SpinnerColumn(),
                        TextColumn("[bold]collecting[/]"),
                        BarColumn(),
                        MofNCompleteColumn(),
                        TextColumn("•"),
                        TimeElapsedColumn(),
                        TextColumn("→"),
                        TimeRemainingColumn(),
                        TextColumn(" • {task.description}"),
                        console=console,
                        transient=False,
                        expand=True,
                        )
    try:
        with progress:
            summary = asyncio.run(run_collector(cfg, progress=RichScanProgress(progress, cfg.mode)))
    except (CollectorError, ValueError) as e:
        log.error("program failed: %s", e)
        raise click.ClickException(str(e))

    _print_summary(summary)
    if summary.error:
        raise click.ClickException(summary.error)


@app.command()
def tokens(path: str = typer.Option(DEFAULT_TOKENS_FILE, "--tokens-file", help="Token metadata cache (JSON)")):
    """List the cached token metadata."""
    try:
        infos = read_token_file(path)
    except CollectorError as e:
        raise click.ClickException(str(e))
    if infos is None:
        raise click.ClickException(f"no token cache at {path}")
    table = Table("address", "symbol", "decimals")
    for i in sorted(infos, key=lambda i: i.symbol.lower()):
        table.add_row(i.address, i.symbol, str(len(str(i.multiplier)) - 1))
    Console().print(table)


if __name__ == "__main__":
    app()
