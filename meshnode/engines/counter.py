"""
Grow-only counter kept in an external key-value service.

No value is held locally. `add` is a read followed by a compare-and-swap
loop; a lost race returns the store's current value in the error text,
which becomes the next `from`.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..errors import KeyDoesNotExist, MalformedRequest, PreconditionFailed, RPCError, StoreError
from ..kv import KVClient, parse_current_value
from ..message import Envelope, MsgType
from ..protocol import Protocol

logger = logging.getLogger(__name__)


class CounterEngine:

    def __init__(self, node: Protocol, *, kv: Optional[KVClient] = None, key: Optional[str] = None):
        self.node = node
        self.kv = kv or KVClient(node.rpc, node.config.kv_service)
        self.key = key or node.config.counter_key

        node.on_init(self.seed)
        node.on(MsgType.ADD, self.handle_add)
        node.on(MsgType.READ, self.handle_read)

    def seed(self) -> None:
        """Create the counter at 0 unless some node already did."""
        try:
            self.kv.cas(self.key, 0, 0, create_if_not_exists=True)
        except PreconditionFailed:
            logger.debug("counter %r already seeded", self.key)
        except RPCError as ex:
            raise StoreError(f"seeding {self.key!r} failed: {ex}") from ex

    def read(self) -> int:
        # A unique write to our own key forces a fresh linearization point, so the
        # following read cannot be served from before our earlier writes
        try:
            self.kv.write(self.node.node_id, self.node.next_msg_id())
            return int(self.kv.read(self.key))
        except RPCError as ex:
            raise StoreError(f"reading {self.key!r} failed: {ex}") from ex

    def add(self, delta: int) -> int:
        """Atomically add `delta`; returns how many CAS attempts it took (0 for delta 0)."""
        if delta == 0:
            return 0
        try:
            current = int(self.kv.read(self.key))
        except KeyDoesNotExist as ex:
            raise StoreError(f"counter {self.key!r} was never seeded") from ex
        except RPCError as ex:
            raise StoreError(f"reading {self.key!r} failed: {ex}") from ex

        attempts = 0
        while True:
            attempts += 1
            try:
                self.kv.cas(self.key, current, current + delta)
                return attempts
            except PreconditionFailed as ex:
                current = parse_current_value(ex.text)
                logger.debug("cas on %r lost a race, store now at %d", self.key, current)
            except RPCError as ex:
                raise StoreError(f"cas on {self.key!r} failed: {ex}") from ex

    # ---- handlers ----
    def handle_add(self, env: Envelope) -> None:
        delta = env.get("delta")
        if not isinstance(delta, int) or isinstance(delta, bool):
            raise MalformedRequest(f"add needs an integer delta, got {delta!r}")
        if delta < 0:
            raise MalformedRequest(f"the counter only grows, got delta {delta}")
        self.add(delta)
        self.node.reply(env, MsgType.ADD_OK)

    def handle_read(self, env: Envelope) -> None:
        self.node.reply(env, MsgType.READ_OK, value=self.read())
