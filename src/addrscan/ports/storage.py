# addrscan/ports/storage.py
from __future__ import annotations

from typing import Protocol
from ..domain.models import OutputRow, TokenInfo
from ..domain.value_types import Address


class RowSink(Protocol):
    """Port for the durable destination of output rows (e.g., CSV)."""

    def write_row(self, row: OutputRow) -> None:
        """Serialize one row in schema field order."""

    def flush(self) -> None: ...

    def close(self) -> None:
        """Flush and release the destination; safe to call once."""


class TokenCache(Protocol):
    """Port for the token metadata cache shared by the encoders."""

    async def lookup(self, address: Address) -> TokenInfo:
        """Return cached metadata, reading it on-chain on a miss."""

    def load(self, path: str | None = None) -> None:
        """Read persisted entries; a missing file is not an error."""

    def save(self, path: str | None = None) -> None:
        """Persist all entries; best-effort, never raises."""
