from __future__ import annotations


class CollectorError(Exception):
    """Base class for every error raised by addrscan."""


class ConfigError(CollectorError):
    pass


class RPCError(CollectorError):
    """JSON-RPC error object or a transport failure talking to the node."""

    def __init__(self, method: str, message: str, code: int | None = None) -> None:
        self.method = method
        self.code = code
        super().__init__(f"{method} failed: code={code} message={message}")


class ScanError(CollectorError):
    """An RPC failure that aborted a scan; carries the offending bounds."""

    def __init__(self, from_block: int, to_block: int, cause: BaseException) -> None:
        self.from_block = from_block
        self.to_block = to_block
        self.cause = cause
        super().__init__(f"scan {from_block}-{to_block} failed: {cause}")


class DecodeError(CollectorError):
    pass


class TokenCacheError(CollectorError):
    pass


class SinkOpenError(CollectorError):
    pass
