from __future__ import annotations
from typing import Any, Dict

from .codecs import Codec, JSONCodec
from .errors import DecodeError
from .message import Envelope, MsgType

_JSON = JSONCodec()
_HEADER = ("type", "msg_id", "in_reply_to")

def to_wire(env: Envelope) -> Dict[str, Any]:
    body: Dict[str, Any] = {"type": str(env.type)}
    if env.msg_id is not None:
        body["msg_id"] = env.msg_id
    if env.in_reply_to is not None:
        body["in_reply_to"] = env.in_reply_to
    body.update(env.payload)
    return {"src": env.src, "dest": env.dest, "body": body}

def from_wire(obj: Any) -> Envelope:
    if not isinstance(obj, dict) or not isinstance(obj.get("body"), dict):
        raise DecodeError(f"not a message object: {obj!r}")
    body = obj["body"]
    try:
        return Envelope(
            src=obj["src"],
            dest=obj["dest"],
            type=MsgType.parse(body["type"]),
            msg_id=body.get("msg_id"),
            in_reply_to=body.get("in_reply_to"),
            payload={k: v for k, v in body.items() if k not in _HEADER},
        )
    except KeyError as ex:
        raise DecodeError(f"message is missing {ex}: {obj!r}") from ex

def pack_frame(env: Envelope, codec: Codec = _JSON) -> bytes:
    """One envelope -> one frame (no trailing newline; the transport frames lines)."""
    return codec.dumps(to_wire(env))

def unpack_frame(frame: bytes, codec: Codec = _JSON) -> Envelope:
    try:
        obj = codec.loads(frame)
    except DecodeError:
        raise
    except Exception as ex:
        raise DecodeError(f"undecodable frame {frame[:80]!r}: {ex}") from ex
    return from_wire(obj)
