from __future__ import annotations
from typing import Any, Dict, Optional
import itertools, logging, threading

from .builder import MessageBuilder
from .errors import ErrorCode
from .message import Envelope, MsgType

logger = logging.getLogger(__name__)


class KVService:
    """
    Linearizable key-value service node (in-process stand-in for seq-kv / lin-kv).

    Answers read / write / cas with read_ok / write_ok / cas_ok or an `error`
    body. Every operation takes the same lock, so operations are totally ordered.
    """

    def __init__(self, name: str = "seq-kv"):
        self.name = name
        self._data: Dict[Any, Any] = {}
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self.requests = 0

    def snapshot(self) -> Dict[Any, Any]:
        with self._lock:
            return dict(self._data)

    def handle(self, env: Envelope) -> Optional[Envelope]:
        """Apply one request; returns the reply (None for things that are not requests)."""
        if env.is_reply:
            return None
        with self._lock:
            self.requests += 1
            msg_id = next(self._ids)
            body = self._apply(env)
        b = MessageBuilder(self.name).msg_id(msg_id)
        if body[0] == MsgType.ERROR:
            return b.error(env, body[1]["code"], body[1]["text"]).build()
        return b.reply(env, body[0], **body[1]).build()

    def _apply(self, env: Envelope):
        key = env.get("key")
        if env.type == MsgType.READ:
            if key not in self._data:
                return MsgType.ERROR, _err(ErrorCode.KEY_DOES_NOT_EXIST, "key does not exist")
            return MsgType.READ_OK, {"value": self._data[key]}

        if env.type == MsgType.WRITE:
            self._data[key] = env.get("value")
            return MsgType.WRITE_OK, {}

        if env.type == MsgType.CAS:
            expected, new = env.get("from"), env.get("to")
            if key not in self._data:
                if not env.get("create_if_not_exists", False):
                    return MsgType.ERROR, _err(ErrorCode.KEY_DOES_NOT_EXIST, "key does not exist")
                self._data[key] = new
                return MsgType.CAS_OK, {}
            current = self._data[key]
            if current != expected:
                return MsgType.ERROR, _err(ErrorCode.PRECONDITION_FAILED,
                                           f"current value {current} is not {expected}")
            self._data[key] = new
            return MsgType.CAS_OK, {}

        logger.warning("%s does not support %s", self.name, env.type)
        return MsgType.ERROR, _err(ErrorCode.NOT_SUPPORTED, f"unsupported request {env.type}")


def _err(code: ErrorCode, text: str) -> Dict[str, Any]:
    return {"code": int(code), "text": text}
