from __future__ import annotations

from ..builder import MessageBuilder
from ..message import Envelope, MsgType
from ..protocol import Protocol


class GuidEngine:
    """
    Unique ids as "<node_id>-<msg_id>", msg_id being the reply's own id.

    Unique only as long as node ids are never reused by a later process;
    ids are sequential per node and reveal their origin.
    """

    def __init__(self, node: Protocol):
        self.node = node
        node.on(MsgType.GENERATE, self.handle_generate)

    def handle_generate(self, env: Envelope) -> None:
        msg_id = self.node.next_msg_id()
        reply = (MessageBuilder(self.node.node_id)
                 .reply(env, MsgType.GENERATE_OK, id=f"{self.node.node_id}-{msg_id}")
                 .msg_id(msg_id)
                 .build())
        self.node.emit(reply)
