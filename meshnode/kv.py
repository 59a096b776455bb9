from __future__ import annotations
import re
from typing import Any, Optional

from .errors import StoreError
from .message import MsgType
from .rpc import RetryManager

_DIGITS = re.compile(r"\d+")


def parse_current_value(text: Optional[str]) -> int:
    """
    Pull the store's current value out of a precondition-failed text such as
    "current value 12 is not 9": the first run of digits.
    """
    match = _DIGITS.search(text or "")
    if match is None:
        raise StoreError(f"no current value in precondition error {text!r}")
    return int(match.group())


class KVClient:
    """read / write / cas against a key-value service node, via RetryManager.call."""

    def __init__(self, rpc: RetryManager, service: str = "seq-kv"):
        self.rpc = rpc
        self.service = service

    def read(self, key: Any) -> Any:
        reply = self.rpc.call(self.service, MsgType.READ, key=key)
        return reply.get("value")

    def write(self, key: Any, value: Any) -> None:
        self.rpc.call(self.service, MsgType.WRITE, key=key, value=value)

    def cas(self, key: Any, from_: Any, to: Any, create_if_not_exists: bool = False) -> None:
        self.rpc.call(self.service, MsgType.CAS, key=key, to=to,
                      create_if_not_exists=create_if_not_exists, **{"from": from_})
