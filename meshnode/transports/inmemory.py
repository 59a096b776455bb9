from __future__ import annotations
import logging
import random
import threading
from collections import defaultdict
from queue import Queue
from typing import Dict, Iterator, List, Optional, Union, Any

from ..codecs import Codec, Codecs
from ..message import Envelope, MsgType
from ..services import KVService
from ..transport import Transport
from ..wire import pack_frame, unpack_frame

logger = logging.getLogger(__name__)

_CLOSED = object()


class InMemoryNetwork:
    """Routes frames between nodes, services and clients inside one process.

    Mapping:
    - node ids registered through transport() get an inbox the node's reader drains
    - service names (attach_service) are answered synchronously by the service
    - anything else is a client; frames addressed to it are decoded and kept for inspection

    Faults: node-to-node frames can be dropped or duplicated at random. Client and
    service traffic is always delivered.
    """

    def __init__(self, codec: Union[str, Codec] = "json", *, drop_rate: float = 0.0,
                 duplicate_rate: float = 0.0, seed: Optional[int] = None):
        self.codec = Codecs.resolve(codec)
        self.drop_rate = drop_rate
        self.duplicate_rate = duplicate_rate
        self._rng = random.Random(seed)
        self._lock = threading.Lock()
        self._inboxes: Dict[str, Queue] = {}
        self._services: Dict[str, KVService] = {}
        self._client_inbox: Dict[str, List[Envelope]] = defaultdict(list)
        self._client_cv = threading.Condition(self._lock)
        self._client_ids = 0
        self.sent: Dict[str, int] = defaultdict(int)
        self.dropped = 0

    # ---- membership ----
    def transport(self, node_id: str) -> "InMemoryTransport":
        with self._lock:
            self._inboxes[node_id] = Queue()
        return InMemoryTransport(self, node_id)

    def attach_service(self, service: KVService) -> KVService:
        with self._lock:
            self._services[service.name] = service
        return service

    def _close(self, node_id: str) -> None:
        with self._lock:
            inbox = self._inboxes.get(node_id)
        if inbox is not None:
            inbox.put(_CLOSED)

    # ---- routing ----
    def deliver(self, src: str, dest: str, frame: bytes) -> None:
        with self._lock:
            self.sent[dest] += 1
            inbox = self._inboxes.get(dest)
            service = self._services.get(dest)
            copies = 1
            if inbox is not None and src in self._inboxes:
                if self._rng.random() < self.drop_rate:
                    self.dropped += 1
                    copies = 0
                elif self._rng.random() < self.duplicate_rate:
                    copies = 2

        if inbox is not None:
            for _ in range(copies):
                inbox.put(frame)
            return

        if service is not None:
            reply = service.handle(unpack_frame(frame, self.codec))
            if reply is not None:
                self.deliver(service.name, reply.dest, pack_frame(reply, self.codec))
            return

        env = unpack_frame(frame, self.codec)
        with self._client_cv:
            self._client_inbox[dest].append(env)
            self._client_cv.notify_all()

    # ---- client side ----
    def inject(self, src: str, dest: str, type: Union[MsgType, str], *,
               msg_id: Optional[int] = None, in_reply_to: Optional[int] = None,
               **fields: Any) -> Envelope:
        """Send a message to `dest` as if from client `src`."""
        if msg_id is None:
            with self._lock:
                self._client_ids += 1
                msg_id = self._client_ids
        env = Envelope(src=src, dest=dest, type=type, msg_id=msg_id, in_reply_to=in_reply_to,
                       payload=fields)
        self.deliver(src, dest, pack_frame(env, self.codec))
        return env

    def request(self, src: str, dest: str, type: Union[MsgType, str], *,
                timeout: float = 5.0, **fields: Any) -> Envelope:
        """inject() and wait for the reply addressed back to `src`."""
        sent = self.inject(src, dest, type, **fields)
        return self.wait_reply(src, sent.msg_id, timeout=timeout)

    def wait_reply(self, client: str, msg_id: int, timeout: float = 5.0) -> Envelope:
        with self._client_cv:
            found = self._client_cv.wait_for(
                lambda: self._find_reply(client, msg_id) is not None, timeout=timeout)
            if not found:
                raise TimeoutError(f"{client} got no reply to msg {msg_id} within {timeout}s")
            return self._find_reply(client, msg_id)

    def client_messages(self, client: str) -> List[Envelope]:
        with self._lock:
            return list(self._client_inbox[client])

    def _find_reply(self, client: str, msg_id: int) -> Optional[Envelope]:
        for env in self._client_inbox[client]:
            if env.in_reply_to == msg_id:
                return env
        return None


class InMemoryTransport(Transport):

    def __init__(self, network: InMemoryNetwork, node_id: str):
        self.network = network
        self.node_id = node_id
        self._inbox = network._inboxes[node_id]
        self._running = False

    def start(self) -> None:
        self._running = True

    def stop(self) -> None:
        if self._running:
            self._running = False
            self.network._close(self.node_id)

    def send(self, dest: str, frame: bytes) -> None:
        self.network.deliver(self.node_id, dest, frame)

    def frames(self) -> Iterator[bytes]:
        while True:
            frame = self._inbox.get()
            if frame is _CLOSED:
                return
            yield frame
