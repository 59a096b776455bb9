from __future__ import annotations
from typing import Dict, Optional, Union, Any, TYPE_CHECKING
import logging, queue, threading, time

from .errors import NodeStopped, RPCError, RPCTimeout
from .message import Envelope, MsgType

if TYPE_CHECKING:
    from .protocol import Protocol

logger = logging.getLogger(__name__)


class RetryManager:
    """
    Correlation and retry on top of Protocol.emit.

    Two delivery modes:
      send_reliable(): emit once, keep the envelope in the unacknowledged table and
                       re-emit it verbatim on every retry tick until an ack arrives.
      call():          emit, block the calling task until the reply arrives,
                       re-emitting the identical request every retry interval.

    Both tables are keyed by msg_id and share one lock.
    """

    def __init__(self, node: "Protocol", *, interval: float = 1.0, timeout: Optional[float] = None):
        self._node = node
        self.interval = interval
        self.timeout = timeout
        self._lock = threading.Lock()
        self._pending: Dict[int, "queue.Queue[Envelope]"] = {}
        self._unacked: Dict[int, Envelope] = {}
        self.retransmissions = 0

    def start(self) -> None:
        self._node.add_ticker("retry", self.retry_unacked, self.interval)

    # ---- fire-and-forget with passive retry ----
    def send_reliable(self, dest: str, type: Union[MsgType, str], **fields: Any) -> Envelope:
        env = self._node.build(dest, type, **fields)
        with self._lock:
            self._unacked[env.msg_id] = env
        self._node.emit(env)
        return env

    def retry_unacked(self) -> int:
        """Re-emit everything still unacknowledged. Returns how many were sent."""
        with self._lock:
            snapshot = list(self._unacked.values())
        for env in snapshot:
            self._node.emit(env)
        if snapshot:
            with self._lock:
                self.retransmissions += len(snapshot)
            logger.debug("retried %d unacknowledged messages", len(snapshot))
        return len(snapshot)

    def unacknowledged(self) -> Dict[int, Envelope]:
        with self._lock:
            return dict(self._unacked)

    # ---- request / await reply with active retry ----
    def call(self, dest: str, type: Union[MsgType, str], *, timeout: Optional[float] = None,
             **fields: Any) -> Envelope:
        """
        Send a request and wait for its reply.

        Raises RPCError if the reply is an `error` body, RPCTimeout if a deadline
        (argument or configured default) passes first, NodeStopped once the node
        is stopping. Without a deadline the request is retried until answered.
        """
        env = self._node.build(dest, type, **fields)
        waiter: "queue.Queue[Envelope]" = queue.Queue(maxsize=1)
        with self._lock:
            self._pending[env.msg_id] = waiter

        limit = timeout if timeout is not None else self.timeout
        started = time.monotonic()
        deadline = started + limit if limit is not None else None

        try:
            self._node.emit(env)
            while True:
                wait = self.interval
                if deadline is not None:
                    wait = max(0.0, min(wait, deadline - time.monotonic()))
                try:
                    reply = waiter.get(timeout=wait)
                except queue.Empty:
                    if self._node.stopping:
                        raise NodeStopped(dest, env.msg_id)
                    if deadline is not None and time.monotonic() >= deadline:
                        raise RPCTimeout(dest, env.msg_id, time.monotonic() - started)
                    with self._lock:
                        self.retransmissions += 1
                    self._node.emit(env)
                    continue

                if reply.type == MsgType.ERROR:
                    raise RPCError.from_body(reply.payload)
                return reply
        finally:
            with self._lock:
                self._pending.pop(env.msg_id, None)

    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    # ---- replies ----
    def resolve(self, reply: Envelope) -> bool:
        """
        Match a reply against waiters, then against unacknowledged sends.
        An `error` reply does not acknowledge a reliable send; it stays queued
        for retry. Unknown ids (duplicates, late retries) are dropped.
        """
        refused = None
        with self._lock:
            waiter = self._pending.pop(reply.in_reply_to, None)
            acked = None
            if waiter is None:
                if reply.type == MsgType.ERROR:
                    refused = self._unacked.get(reply.in_reply_to)
                else:
                    acked = self._unacked.pop(reply.in_reply_to, None)

        if waiter is not None:
            waiter.put_nowait(reply)
            return True
        if acked is not None:
            return True
        if refused is not None:
            logger.info("%s refused msg %s (%s %s); will retry", reply.src, reply.in_reply_to,
                        reply.get("code"), reply.get("text"))
            return False
        logger.debug("dropping %s from %s in reply to unknown msg %s",
                     reply.type, reply.src, reply.in_reply_to)
        return False
