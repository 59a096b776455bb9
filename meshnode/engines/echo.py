from __future__ import annotations

from ..message import Envelope, MsgType
from ..protocol import Protocol


class EchoEngine:
    def __init__(self, node: Protocol):
        self.node = node
        node.on(MsgType.ECHO, self.handle_echo)

    def handle_echo(self, env: Envelope) -> None:
        self.node.reply(env, MsgType.ECHO_OK, echo=env.get("echo"))
