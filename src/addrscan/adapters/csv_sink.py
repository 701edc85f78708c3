from __future__ import annotations
import logging, os
import pyarrow as pa
import pyarrow.csv as pacsv

from ..domain.errors import SinkOpenError
from ..domain.models import OutputRow, row_values
from ..domain.value_types import Mode
from ..ports.storage import RowSink

logger = logging.getLogger(__name__)

TRANSACTION_SCHEMA = pa.schema([
    pa.field("tx_hash",      pa.string()),
    pa.field("nonce",        pa.uint64()),
    pa.field("sender",       pa.string()),
    pa.field("receiver",     pa.string()),     # null (empty cell) for contract creation
    pa.field("block_number", pa.int64()),
    pa.field("timestamp",    pa.int64()),
])

TRANSFER_SCHEMA = pa.schema([
    pa.field("token",            pa.string()),
    pa.field("symbol",           pa.string()),
    pa.field("from",             pa.string()),
    pa.field("to",               pa.string()),
    pa.field("value",            pa.string()),  # uint256 does not fit int64
    pa.field("normalized_value", pa.float64()),
    pa.field("tx_hash",          pa.string()),
    pa.field("block_number",     pa.int64()),
    pa.field("event_id",         pa.int64()),
])

SCHEMAS: dict[Mode, pa.Schema] = {"transactions": TRANSACTION_SCHEMA, "transfers": TRANSFER_SCHEMA}


class CsvRowSink(RowSink):
    """
    Streams rows into one CSV file through pyarrow's incremental CSVWriter.
    The header is written on open; with flush_on_write every row reaches the
    OS before write_row returns.
    """
    def __init__(self, path: str, schema: pa.Schema, *, flush_on_write: bool = True) -> None:
        self.path = path
        self.schema = schema
        self.flush_on_write = flush_on_write
        self._closed = False
        try:
            os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
            self._file = open(path, "wb")
        except OSError as e:
            raise SinkOpenError(f"create file {path}: {e}") from e
        try:
            self._writer = pacsv.CSVWriter(self._file, schema,
                                           write_options=pacsv.WriteOptions(include_header=True))
            self._file.flush()
        except (pa.ArrowException, OSError) as e:
            self._file.close()
            raise SinkOpenError(f"write header to {path}: {e}") from e

    @classmethod
    def for_mode(cls, path: str, mode: Mode) -> "CsvRowSink":
        return cls(path, SCHEMAS[mode])

    def write_row(self, row: OutputRow) -> None:
        values = row_values(row)
        batch = pa.RecordBatch.from_arrays(
            [pa.array([v], type=f.type) for v, f in zip(values, self.schema, strict=True)],
            schema=self.schema,
        )
        self._writer.write_batch(batch)
        if self.flush_on_write:
            self.flush()

    def flush(self) -> None:
        self._file.flush()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._writer.close()
            self._file.flush()
        except (pa.ArrowException, OSError) as e:
            logger.error("flush %s failed: %s", self.path, e)
        try:
            self._file.close()
        except OSError as e:
            logger.error("close file %s failed: %s", self.path, e)
