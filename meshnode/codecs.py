
from __future__ import annotations
from typing import Any, Dict, Protocol as TypingProtocol, Union

import json

import msgpack

class Codec(TypingProtocol):
    name: str
    line_safe: bool      # encoded frames never contain b"\n"
    def dumps(self, obj: Any) -> bytes: ...
    def loads(self, data: bytes) -> Any: ...

class JSONCodec:
    """The harness wire format: compact JSON, one object per line."""
    name = "json"
    line_safe = True

    def dumps(self, body: Any) -> bytes:
        # json escapes control characters inside strings, so no raw newline survives
        return json.dumps(body, separators=(",", ":")).encode("utf-8")

    def loads(self, frame: bytes) -> Any:
        return json.loads(frame.decode("utf-8"))

class MsgPackCodec:
    """Binary frames for in-process networks; not usable on the line transport."""
    name = "msgpack"
    line_safe = False

    def dumps(self, body: Any) -> bytes:
        return msgpack.packb(body, use_bin_type=True)

    def loads(self, frame: bytes) -> Any:
        # offsets maps may arrive keyed by ints from other encoders
        return msgpack.unpackb(frame, raw=False, strict_map_key=False)

class Codecs:
    _by_name: Dict[str, Codec] = {c.name: c for c in (JSONCodec(), MsgPackCodec())}

    @classmethod
    def get(cls, name: str) -> Codec:
        try:
            return cls._by_name[name]
        except KeyError:
            raise ValueError(f"Unknown codec: {name} (known: {', '.join(sorted(cls._by_name))})") from None

    @classmethod
    def resolve(cls, codec: Union[str, Codec]) -> Codec:
        """A codec name or an instance -> the codec instance."""
        return cls.get(codec) if isinstance(codec, str) else codec
