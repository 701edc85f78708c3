from __future__ import annotations
from typing import NewType, Literal

Address = NewType("Address", str)   # checksum hex with 0x
Topic   = NewType("Topic", str)     # 66-char 0x-hash, lowercase
Mode    = Literal["transactions", "transfers"]
