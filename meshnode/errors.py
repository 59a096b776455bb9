from __future__ import annotations
from enum import IntEnum
from typing import Optional


class ErrorCode(IntEnum):
    """Standard error codes carried in `error` message bodies."""
    TIMEOUT                 = 0
    NODE_NOT_FOUND          = 1
    NOT_SUPPORTED           = 10
    TEMPORARILY_UNAVAILABLE = 11
    MALFORMED_REQUEST       = 12
    CRASH                   = 13
    ABORT                   = 14
    KEY_DOES_NOT_EXIST      = 20
    KEY_ALREADY_EXISTS      = 21
    PRECONDITION_FAILED     = 22
    TXN_CONFLICT            = 30


class MeshError(Exception):
    """Base class for every error raised by meshnode."""


class ProtocolViolation(MeshError):
    """A message arrived that this node does not expect or cannot parse."""
    code = ErrorCode.NOT_SUPPORTED


class MalformedRequest(ProtocolViolation):
    code = ErrorCode.MALFORMED_REQUEST


class AlreadyInitialized(ProtocolViolation):
    code = ErrorCode.PRECONDITION_FAILED

    def __init__(self, node_id: str):
        super().__init__(f"node is already initialized as {node_id!r}")
        self.node_id = node_id


class NotInitialized(ProtocolViolation):
    code = ErrorCode.TEMPORARILY_UNAVAILABLE

    def __init__(self):
        super().__init__("node has not received init yet")


class TransportError(MeshError):
    """The transport can no longer move frames. Fatal."""


class DecodeError(TransportError):
    """An inbound frame could not be decoded into an envelope. Fatal."""


class RPCError(MeshError):
    """A remote answered a request with an `error` body."""

    def __init__(self, code: int, text: Optional[str] = None):
        super().__init__(f"error {code}: {text}" if text else f"error {code}")
        self.code = code
        self.text = text

    @classmethod
    def from_body(cls, payload: dict) -> "RPCError":
        code = int(payload.get("code", ErrorCode.CRASH))
        text = payload.get("text")
        if code == ErrorCode.PRECONDITION_FAILED:
            return PreconditionFailed(code, text)
        if code == ErrorCode.KEY_DOES_NOT_EXIST:
            return KeyDoesNotExist(code, text)
        return cls(code, text)


class PreconditionFailed(RPCError):
    """CAS lost a race; the text usually embeds the store's current value."""


class KeyDoesNotExist(RPCError):
    pass


class StoreError(MeshError):
    """The backing key-value service failed in a way we do not retry. Fatal."""


class RPCTimeout(MeshError):
    code = ErrorCode.TIMEOUT

    def __init__(self, dest: str, msg_id: int, waited: float):
        super().__init__(f"no reply from {dest} to msg {msg_id} after {waited:.2f}s")
        self.dest = dest
        self.msg_id = msg_id
        self.waited = waited


class NodeStopped(MeshError):
    """The node stopped while a request was still waiting for its reply."""

    def __init__(self, dest: str, msg_id: int):
        super().__init__(f"node stopped before {dest} answered msg {msg_id}")
        self.dest = dest
        self.msg_id = msg_id
