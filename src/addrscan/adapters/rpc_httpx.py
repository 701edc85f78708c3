from __future__ import annotations
import asyncio, httpx, logging
from typing import Any, Sequence
from ..domain.decoding import DECIMALS_SELECTOR, SYMBOL_SELECTOR, decode_string_result, decode_uint_result
from ..domain.errors import RPCError
from ..domain.models import RawTransferLog
from ..domain.value_types import Address, Topic
from ..ports.rpc import LedgerClient, TokenMetadataReader

logger = logging.getLogger(__name__)

def _to_hex_block(n: int) -> str: return hex(int(n))
def _is_topic_hash(x: str) -> bool: return isinstance(x, str) and x.startswith("0x") and len(x)==66

def _build_topics_param(topics: Sequence[Topic | None]) -> list[str | None]:
    out: list[str | None] = []
    for t in topics:
        if t is None:
            out.append(None); continue
        s = str(t).strip().lower()
        if not _is_topic_hash(s):
            raise ValueError(f"Invalid topic: {t!r}")
        out.append(s)
    return out

class HttpxRPC(LedgerClient, TokenMetadataReader):
    def __init__(self, rpc_url: str, timeout_s: int = 20, max_conn: int = 16,
                 transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.rpc_url = rpc_url
        self._next_id = 0
        self.client = httpx.AsyncClient(
            http2=True,
            timeout=httpx.Timeout(timeout_s),
            limits=httpx.Limits(max_connections=max_conn, max_keepalive_connections=max(1, max_conn//2)),
            transport=transport,
        )

    async def _call(self, method: str, params: list[Any], *, allow_null: bool = False) -> Any:
        self._next_id += 1
        payload = {"jsonrpc":"2.0","id":self._next_id,"method":method,"params":params}
        # retry on 429 with simple backoff
        for attempt in range(3):
            try:
                r = await self.client.post(self.rpc_url, json=payload)
                if r.status_code == 429:
                    ra = r.headers.get("Retry-After")
                    delay = max(1.0, float(ra)) if ra and ra.isdigit() else (1.0 * (2**attempt))
                    logger.warning("%s rate limited, retrying in %.1fs", method, delay)
                    await asyncio.sleep(delay); continue
                r.raise_for_status()
                data = r.json()
            except httpx.HTTPError as e:
                raise RPCError(method, f"{type(e).__name__}: {e}") from e
            if "error" in data:
                err = data["error"]
                if isinstance(err, dict):
                    raise RPCError(method, str(err.get("message")), err.get("code"))
                raise RPCError(method, str(err))
            result = data.get("result")
            if result is None and not allow_null:
                raise RPCError(method, "response has no result")
            return result
        raise RPCError(method, "retries exhausted (HTTP 429)")

    async def latest_block(self) -> int:
        return int(await self._call("eth_blockNumber", []), 16)

    async def chain_id(self) -> int:
        return int(await self._call("eth_chainId", []), 16)

    async def get_block(self, number: int) -> dict[str, Any]:
        block = await self._call("eth_getBlockByNumber", [_to_hex_block(number), True], allow_null=True)
        if block is None:
            raise RPCError("eth_getBlockByNumber", f"block {number} not found")
        return block

    async def get_logs(self, topics: Sequence[Topic | None], from_block: int, to_block: int) -> list[RawTransferLog]:
        res = await self._call("eth_getLogs", [{
            "fromBlock": _to_hex_block(from_block),
            "toBlock": _to_hex_block(to_block),
            "topics": _build_topics_param(topics),
        }], allow_null=True)
        typed: list[RawTransferLog] = []
        for rl in res or []:
            typed.append(RawTransferLog(
                address=Address(rl["address"]),
                topics=tuple(t.lower() for t in rl.get("topics", [])),
                data_hex=str(rl.get("data") or "0x"),
                block_number=int(rl["blockNumber"], 16),
                tx_hash=(rl.get("transactionHash") or "").lower(),
                log_index=int(rl["logIndex"], 16),
            ))
        return typed

    async def eth_call(self, to: Address, data: str) -> str:
        return await self._call("eth_call", [{"to": str(to), "data": data}, "latest"])

    async def token_symbol(self, token: Address) -> str:
        return decode_string_result(await self.eth_call(token, SYMBOL_SELECTOR))

    async def token_decimals(self, token: Address) -> int:
        d = decode_uint_result(await self.eth_call(token, DECIMALS_SELECTOR))
        if not 0 <= d <= 255:
            raise ValueError(f"decimals out of range for {token}: {d}")
        return d

    async def aclose(self) -> None:
        if not self.client.is_closed:
            await self.client.aclose()
