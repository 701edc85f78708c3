from __future__ import annotations

from dataclasses import dataclass

from eth_utils import keccak, to_checksum_address

from addrscan.domain.errors import DecodeError
from addrscan.domain.models import RawTransferLog
from addrscan.domain.value_types import Address, Topic


TRANSFER_SIGNATURE = "Transfer(address,address,uint256)"
TRANSFER_T0 = Topic("0x" + keccak(text=TRANSFER_SIGNATURE).hex())

SYMBOL_SELECTOR   = "0x" + keccak(text="symbol()")[:4].hex()     # 0x95d89b41
DECIMALS_SELECTOR = "0x" + keccak(text="decimals()")[:4].hex()   # 0x313ce567

ZERO_ADDRESS = Address("0x" + "00" * 20)

# --------- hex helpers ---------------------------------------------------------

def hex_to_int(v: str | int | None) -> int:
    """Handles 0x..., decimal strings and native ints; None -> 0."""
    if v is None:
        return 0
    if isinstance(v, int):
        return v
    s = v.lower()
    return int(s, 16) if s.startswith("0x") else int(s)

def hex_to_bytes(s: str | None) -> bytes:
    if not s:
        return b""
    h = s[2:] if s[:2].lower() == "0x" else s
    if len(h) % 2: h = "0" + h
    return bytes.fromhex(h)

def address_to_topic(address: str) -> Topic:
    """Left-pad a 20-byte address to a 32-byte indexed topic."""
    h = address.lower()
    h = h[2:] if h.startswith("0x") else h
    return Topic("0x" + h.rjust(64, "0"))

def topic_to_address(t: str) -> Address:
    h = t[2:] if t[:2].lower() == "0x" else t
    if len(h) != 64:
        raise DecodeError(f"topic is not 32 bytes: {t!r}")
    return Address(to_checksum_address("0x" + h[-40:]))

# --------- 32B word slicing (fast, no eth_abi) --------------------------------

def _word(b: bytes, i: int) -> bytes:
    return b[i*32:(i+1)*32]

def _u256(w: bytes) -> int:
    return int.from_bytes(w, "big")

# --------- Transfer(address indexed from, address indexed to, uint256 value) --

@dataclass(slots=True, frozen=True)
class DecodedTransfer:
    sender: Address
    receiver: Address
    value: int

def decode_transfer(log: RawTransferLog) -> DecodedTransfer:
    topics = log.topics
    if not topics or topics[0].lower() != TRANSFER_T0:
        raise DecodeError(f"not a Transfer event (topic0={topics[0] if topics else None})")
    # ERC-721 emits the same topic0 with the token id indexed as topic3
    if len(topics) != 3:
        raise DecodeError(f"expected 3 topics, got {len(topics)}")
    try:
        data = hex_to_bytes(log.data_hex)
    except ValueError as e:
        raise DecodeError(f"data is not hex: {e}") from e
    if len(data) < 32:
        raise DecodeError(f"data too short for uint256: {len(data)} bytes")
    return DecodedTransfer(
        sender=topic_to_address(topics[1]),
        receiver=topic_to_address(topics[2]),
        value=_u256(_word(data, 0)),
    )

# --------- eth_call return values ---------------------------------------------

def decode_uint_result(result_hex: str) -> int:
    data = hex_to_bytes(result_hex)
    if len(data) < 32:
        raise DecodeError(f"uint result too short: {len(data)} bytes")
    return _u256(_word(data, 0))

def decode_string_result(result_hex: str) -> str:
    """
    ABI `string` return value; falls back to the legacy `bytes32` encoding
    some old tokens (e.g. MKR) use for symbol().
    """
    data = hex_to_bytes(result_hex)
    if len(data) < 32:
        raise DecodeError(f"string result too short: {len(data)} bytes")
    if len(data) == 32:
        return data.rstrip(b"\x00").decode("utf-8", errors="replace").strip()
    offset = _u256(_word(data, 0))
    if offset + 32 > len(data):
        raise DecodeError(f"string offset {offset} out of range")
    length = _u256(data[offset:offset+32])
    raw = data[offset+32:offset+32+length]
    if len(raw) != length:
        raise DecodeError(f"string length {length} out of range")
    return raw.decode("utf-8", errors="replace")
