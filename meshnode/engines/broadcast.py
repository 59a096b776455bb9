"""
Gossip broadcast.

Values submitted by clients spread over a fanout tree built from the sorted
node ids. New values are queued per neighbour and flushed as one
`batch_broadcast` per neighbour every flush interval; each batch is sent
through RetryManager.send_reliable so it is retried until the neighbour acks.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, List, Optional, Set

from ..errors import MalformedRequest, ProtocolViolation
from ..message import Envelope, MsgType
from ..protocol import Protocol
from ..topology import tree_neighbors

logger = logging.getLogger(__name__)


class BroadcastEngine:

    def __init__(self, node: Protocol, *, fanout: Optional[int] = None,
                 flush_interval: Optional[float] = None):
        self.node = node
        self.fanout = fanout if fanout is not None else node.config.fanout
        self._lock = threading.Lock()
        self._known: Set[int] = set()
        self._neighbors: List[str] = []
        self._batches: Dict[str, List[int]] = {}

        node.on(MsgType.BROADCAST, self.handle_broadcast)
        node.on(MsgType.BATCH_BROADCAST, self.handle_batch_broadcast)
        node.on(MsgType.READ, self.handle_read)
        node.on(MsgType.TOPOLOGY, self.handle_topology)
        node.add_ticker("flush", self.flush,
                        flush_interval if flush_interval is not None else node.config.flush_interval)

    # ---- state accessors ----
    @property
    def neighbors(self) -> List[str]:
        with self._lock:
            return list(self._neighbors)

    def known(self) -> Set[int]:
        with self._lock:
            return set(self._known)

    def pending_batches(self) -> Dict[str, List[int]]:
        with self._lock:
            return {n: list(b) for n, b in self._batches.items() if b}

    def set_topology(self) -> List[str]:
        """Build our neighbours from the cluster membership learned at init."""
        neighbors = tree_neighbors(self.node.node_id, self.node.node_ids, self.fanout)
        with self._lock:
            previous = self._batches
            # A neighbour we were not talking to yet has to catch up on everything known
            self._batches = {n: previous[n] if n in previous else sorted(self._known)
                             for n in neighbors}
            self._neighbors = neighbors
        logger.info("gossip neighbours: %s", ", ".join(neighbors) or "(none)")
        return neighbors

    def accept(self, values: Iterable[int], origin: Optional[str] = None) -> List[int]:
        """
        Record values; queue the new ones for every neighbour except `origin`.
        Returns the values that were new.
        """
        fresh: List[int] = []
        with self._lock:
            for value in values:
                if value in self._known:
                    continue
                self._known.add(value)
                fresh.append(value)
            if fresh:
                for n in self._neighbors:
                    if n != origin:
                        self._batches[n].extend(fresh)
        return fresh

    def flush(self) -> int:
        """Send one batch per neighbour with queued values. Returns the number of batches sent."""
        with self._lock:
            ready = {n: b for n, b in self._batches.items() if b}
            for n in ready:
                self._batches[n] = []
        for dest, values in ready.items():
            self.node.rpc.send_reliable(dest, MsgType.BATCH_BROADCAST, messages=values)
        return len(ready)

    # ---- handlers ----
    def handle_topology(self, env: Envelope) -> None:
        # The suggested topology is ignored; we build our own tree
        try:
            self.set_topology()
        except ValueError as ex:
            raise ProtocolViolation(str(ex)) from ex
        self.node.reply(env, MsgType.TOPOLOGY_OK)

    def handle_broadcast(self, env: Envelope) -> None:
        value = env.get("message")
        if value is None:
            raise MalformedRequest("broadcast without a message")
        if not self.accept([value]):
            logger.warning("client %s re-sent known value %r", env.src, value)
        self.node.reply(env, MsgType.BROADCAST_OK)

    def handle_batch_broadcast(self, env: Envelope) -> None:
        values = env.get("messages")
        if not isinstance(values, list):
            raise MalformedRequest("batch_broadcast without a messages list")
        self.accept(values, origin=env.src)
        self.node.reply(env, MsgType.BROADCAST_OK)

    def handle_read(self, env: Envelope) -> None:
        self.node.reply(env, MsgType.READ_OK, messages=sorted(self.known()))
