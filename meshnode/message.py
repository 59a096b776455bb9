from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, Union
from enum import StrEnum

# Allowed body types
class MsgType(StrEnum):
    INIT                      = "init"
    INIT_OK                   = "init_ok"
    ERROR                     = "error"
    ECHO                      = "echo"
    ECHO_OK                   = "echo_ok"
    GENERATE                  = "generate"
    GENERATE_OK               = "generate_ok"
    BROADCAST                 = "broadcast"
    BATCH_BROADCAST           = "batch_broadcast"
    BROADCAST_OK              = "broadcast_ok"
    TOPOLOGY                  = "topology"
    TOPOLOGY_OK               = "topology_ok"
    READ                      = "read"
    READ_OK                   = "read_ok"
    WRITE                     = "write"
    WRITE_OK                  = "write_ok"
    CAS                       = "cas"
    CAS_OK                    = "cas_ok"
    ADD                       = "add"
    ADD_OK                    = "add_ok"
    SEND                      = "send"
    SEND_OK                   = "send_ok"
    POLL                      = "poll"
    POLL_OK                   = "poll_ok"
    COMMIT_OFFSETS            = "commit_offsets"
    COMMIT_OFFSETS_OK         = "commit_offsets_ok"
    LIST_COMMITTED_OFFSETS    = "list_committed_offsets"
    LIST_COMMITTED_OFFSETS_OK = "list_committed_offsets_ok"

    @classmethod
    def parse(cls, value: str) -> Union["MsgType", str]:
        """Known types become members; anything else stays a plain string."""
        try:
            return cls(value)
        except ValueError:
            return value

@dataclass(frozen=True)
class Envelope:
    """
    Envelope fields, 'payload' holds the type-specific body fields
    """
    src: str                     # sender node id (or client / service name)
    dest: str                    # destination node id
    type: Union[MsgType, str]    # body type; raw string if unknown to us
    msg_id: Optional[int] = None         # unique per sender, strictly increasing
    in_reply_to: Optional[int] = None    # msg_id of the request this answers
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_reply(self) -> bool:
        return self.in_reply_to is not None

    def get(self, name: str, default: Any = None) -> Any:
        return self.payload.get(name, default)

    def __getitem__(self, name: str) -> Any:
        return self.payload[name]
