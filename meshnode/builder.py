from __future__ import annotations
from typing import Optional, Dict, Any, Union

from .message import Envelope, MsgType

class MessageBuilder:
    """
    Builder that always produces a valid Envelope.
    It enforces two rules:
     - every envelope has a destination and a type
     - a reply (in_reply_to set) must carry its own msg_id too
    """
    def __init__(self, src: str):
        self._env: Dict[str, Any] = {
            "src":         src,
            "dest":        None,
            "type":        None,
            "msg_id":      None,
            "in_reply_to": None,
            "payload":     {},
        }

    def body(self, type: Union[MsgType, str], **fields: Any):
        self._env["type"]    = type
        self._env["payload"] = fields
        return self

    def reply(self, request: Envelope, type: Union[MsgType, str], **fields: Any):
        self._env["dest"]        = request.src
        self._env["in_reply_to"] = request.msg_id
        return self.body(type, **fields)

    def error(self, request: Envelope, code: int, text: Optional[str] = None):
        fields: Dict[str, Any] = {"code": int(code)}
        if text is not None:
            fields["text"] = text
        return self.reply(request, MsgType.ERROR, **fields)

    def to(self, dest: str):
        self._env["dest"] = dest
        return self

    def msg_id(self, msg_id: int):
        self._env["msg_id"] = msg_id
        return self

    def build(self) -> Envelope:
        if not self._env["dest"]:
            raise ValueError("Envelope requires a destination.")
        if not self._env["type"]:
            raise ValueError("Envelope requires a body type.")
        if self._env["in_reply_to"] is not None and self._env["msg_id"] is None:
            raise ValueError("Replies must carry their own msg_id.")
        return Envelope(**self._env)

