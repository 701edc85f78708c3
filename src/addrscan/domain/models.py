from __future__ import annotations
from collections import Counter
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Union
from .value_types import Address, Mode

WINDOW_SIZE = 1_000

@dataclass(slots=True, frozen=True)
class BlockRange:
    start: int
    end: int
    def span(self) -> int: return self.end - self.start + 1

@dataclass(slots=True)
class ScanWindow:
    """Mutable cursor over a BlockRange, `size` heights at a time (inclusive bounds)."""
    bounds: BlockRange
    from_block: int
    to_block: int
    size: int = WINDOW_SIZE

    @classmethod
    def first(cls, bounds: BlockRange, size: int = WINDOW_SIZE) -> "ScanWindow":
        return cls(bounds, bounds.start, min(bounds.end, bounds.start + size - 1), size)

    def is_last(self) -> bool:
        return self.to_block >= self.bounds.end

    def advance(self) -> bool:
        """Move to the next window; False once the range is exhausted."""
        if self.is_last():
            return False
        self.from_block = self.to_block + 1
        self.to_block = min(self.bounds.end, self.from_block + self.size - 1)
        return True

# ---------- raw records (channel payload) -------------------------------------

@dataclass(slots=True, frozen=True)
class RawTransaction:
    tx_hash: str
    nonce: int
    sender: Address
    receiver: Address | None           # None for contract creation
    block_number: int
    timestamp: int

@dataclass(slots=True, frozen=True)
class RawTransferLog:
    address: Address
    topics: tuple[str, ...]            # lowercased with 0x
    data_hex: str
    block_number: int
    tx_hash: str
    log_index: int

RawRecord = Union[RawTransaction, RawTransferLog]

# ---------- token metadata ----------------------------------------------------

@dataclass(slots=True, frozen=True)
class TokenInfo:
    address: Address
    symbol: str
    multiplier: int                    # 10 ** decimals

    def to_json(self) -> dict[str, Any]:
        return {"Address": self.address, "Symbol": self.symbol, "Multiplier": self.multiplier}

    @classmethod
    def from_json(cls, obj: dict[str, Any]) -> "TokenInfo":
        return cls(address=Address(obj["Address"]), symbol=str(obj["Symbol"]), multiplier=int(obj["Multiplier"]))

# ---------- output rows (field order == CSV column order) ---------------------

@dataclass(slots=True, frozen=True)
class TransactionRow:
    tx_hash: str
    nonce: int
    sender: str
    receiver: str | None
    block_number: int
    timestamp: int

@dataclass(slots=True, frozen=True)
class TransferRow:
    token: str
    symbol: str
    from_: str
    to: str
    value: str                         # big ints as strings
    normalized_value: float
    tx_hash: str
    block_number: int
    event_id: int

OutputRow = Union[TransactionRow, TransferRow]

def row_values(row: OutputRow) -> list[Any]:
    return [getattr(row, f.name) for f in fields(row)]

@dataclass(slots=True, frozen=True)
class EncodeResult:
    row: OutputRow | None = None
    dropped_reason: str | None = None

    @property
    def ok(self) -> bool: return self.row is not None

# ---------- run bookkeeping ---------------------------------------------------

class PipelineState(str, Enum):
    INIT = "init"
    CONNECTED = "connected"
    SCANNING = "scanning"
    DRAINING = "draining"
    STOPPED = "stopped"

@dataclass(slots=True)
class SinkStats:
    received: int = 0
    written: int = 0
    dropped: int = 0
    write_errors: int = 0
    drop_reasons: Counter = field(default_factory=Counter)

@dataclass(slots=True)
class RunSummary:
    mode: Mode
    from_block: int
    to_block: int
    records_emitted: int = 0
    rows_written: int = 0
    rows_dropped: int = 0
    cancelled: bool = False
    error: str | None = None
