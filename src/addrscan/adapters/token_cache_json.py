# addrscan/adapters/token_cache_json.py
from __future__ import annotations

import asyncio
import json
import logging
import os

from eth_utils import to_checksum_address

from ..domain.errors import TokenCacheError
from ..domain.models import TokenInfo
from ..domain.value_types import Address
from ..ports.rpc import TokenMetadataReader
from ..ports.storage import TokenCache

logger = logging.getLogger(__name__)

DEFAULT_TOKENS_FILE = "./.data/tokens.json"
DEFAULT_DECIMALS = 18


class JsonTokenCache(TokenCache):
    """
    Token metadata keyed by checksum address, persisted as a JSON array of
    {"Address", "Symbol", "Multiplier"} records.

    Reads are plain dict reads (atomic between awaits on one event loop).
    Misses take `_write_lock` and re-check before reading on-chain, so two
    concurrent lookups of the same token issue one set of eth_calls.
    """
    def __init__(self, reader: TokenMetadataReader, path: str = DEFAULT_TOKENS_FILE) -> None:
        self.reader = reader
        self.path = path
        self._tokens: dict[str, TokenInfo] = {}
        self._write_lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._tokens)

    def load(self, path: str | None = None) -> None:
        path = path or self.path
        infos = read_token_file(path)
        if infos is None:
            logger.info("no token cache at %s, starting empty", path)
            return
        for info in infos:
            self._tokens[info.address] = info
        logger.info("loaded %d tokens from %s", len(infos), path)

    async def lookup(self, address: Address) -> TokenInfo:
        key = _key(address)
        info = self._tokens.get(key)
        if info is not None:
            return info

        async with self._write_lock:
            info = self._tokens.get(key)
            if info is not None:
                return info

            token = Address(key)
            symbol = await self.reader.token_symbol(token)
            try:
                decimals = await self.reader.token_decimals(token)
            except Exception as e:
                logger.warning("get token decimals %s failed, using %d: %s", token, DEFAULT_DECIMALS, e)
                decimals = DEFAULT_DECIMALS

            info = TokenInfo(address=token, symbol=symbol, multiplier=10 ** decimals)
            self._tokens[key] = info
            logger.debug("cached token %s (%s, decimals=%d)", token, symbol, decimals)
            return info

    def save(self, path: str | None = None) -> None:
        path = path or self.path
        data = [info.to_json() for info in self._tokens.values()]
        tmp = path + ".tmp"
        try:
            os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
            with open(tmp, "w") as f:
                json.dump(data, f, separators=(",", ":"))
            os.replace(tmp, path)
        except OSError as e:
            logger.error("save token cache %s failed: %s", path, e)
            return
        logger.info("saved %d tokens to %s", len(data), path)


def _key(address: str) -> str:
    return to_checksum_address(address)


def read_token_file(path: str) -> list[TokenInfo] | None:
    """Entries of a persisted cache file, or None if there is no file."""
    try:
        with open(path, "r") as f:
            raw = json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, json.JSONDecodeError) as e:
        raise TokenCacheError(f"read token cache {path}: {e}") from e

    if raw is None:
        return []
    if not isinstance(raw, list):
        raise TokenCacheError(f"token cache {path} is not a JSON array")
    try:
        infos = [TokenInfo.from_json(obj) for obj in raw]
        return [TokenInfo(Address(_key(i.address)), i.symbol, i.multiplier) for i in infos]
    except (KeyError, TypeError, ValueError) as e:
        raise TokenCacheError(f"malformed entry in token cache {path}: {e}") from e
