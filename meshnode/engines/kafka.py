"""
Kafka-style log: one append-only, offset-addressed log per key, with
committed offsets advertised by clients.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ..errors import MalformedRequest
from ..message import Envelope, MsgType
from ..protocol import Protocol

logger = logging.getLogger(__name__)


@dataclass
class PartitionLog:
    next_offset: int = 0
    committed_offset: int = 0
    entries: List[Tuple[int, Any]] = field(default_factory=list)

    def append(self, value: Any) -> int:
        offset = self.next_offset
        self.entries.append((offset, value))
        self.next_offset += 1
        return offset

    def read_from(self, offset: int, limit: int) -> List[Tuple[int, Any]]:
        # Offsets are contiguous from 0, so the offset is also the list index
        start = max(0, offset)
        return self.entries[start:start + limit]


class KafkaEngine:

    def __init__(self, node: Protocol, *, page_size: Optional[int] = None,
                 monotonic_commits: Optional[bool] = None):
        self.node = node
        self.page_size = page_size if page_size is not None else node.config.poll_page_size
        self.monotonic_commits = (monotonic_commits if monotonic_commits is not None
                                  else node.config.monotonic_commits)
        self._lock = threading.Lock()
        self._logs: Dict[str, PartitionLog] = {}

        node.on(MsgType.SEND, self.handle_send)
        node.on(MsgType.POLL, self.handle_poll)
        node.on(MsgType.COMMIT_OFFSETS, self.handle_commit_offsets)
        node.on(MsgType.LIST_COMMITTED_OFFSETS, self.handle_list_committed_offsets)

    def send(self, key: str, value: Any) -> int:
        with self._lock:
            return self._logs.setdefault(key, PartitionLog()).append(value)

    def poll(self, offsets: Mapping[str, int]) -> Dict[str, List[Tuple[int, Any]]]:
        with self._lock:
            return {key: self._logs[key].read_from(int(offset), self.page_size)
                    for key, offset in offsets.items() if key in self._logs}

    def commit_offsets(self, offsets: Mapping[str, int]) -> None:
        with self._lock:
            for key, offset in offsets.items():
                log = self._logs.setdefault(key, PartitionLog())
                if self.monotonic_commits and int(offset) < log.committed_offset:
                    logger.debug("ignoring commit of %s to %s (already %s)", key, offset, log.committed_offset)
                    continue
                log.committed_offset = int(offset)

    def list_committed_offsets(self, keys: Iterable[str]) -> Dict[str, int]:
        with self._lock:
            return {key: self._logs[key].committed_offset for key in keys if key in self._logs}

    # ---- handlers ----
    def handle_send(self, env: Envelope) -> None:
        key = env.get("key")
        if key is None or "msg" not in env.payload:
            raise MalformedRequest("send needs a key and a msg")
        self.node.reply(env, MsgType.SEND_OK, offset=self.send(key, env["msg"]))

    def handle_poll(self, env: Envelope) -> None:
        msgs = self.poll(_offsets(env))
        self.node.reply(env, MsgType.POLL_OK, msgs={k: [list(e) for e in v] for k, v in msgs.items()})

    def handle_commit_offsets(self, env: Envelope) -> None:
        self.commit_offsets(_offsets(env))
        self.node.reply(env, MsgType.COMMIT_OFFSETS_OK)

    def handle_list_committed_offsets(self, env: Envelope) -> None:
        keys = env.get("keys")
        if not isinstance(keys, list):
            raise MalformedRequest("list_committed_offsets needs a keys list")
        self.node.reply(env, MsgType.LIST_COMMITTED_OFFSETS_OK, offsets=self.list_committed_offsets(keys))


def _offsets(env: Envelope) -> Dict[str, int]:
    offsets = env.get("offsets")
    if not isinstance(offsets, dict):
        raise MalformedRequest(f"{env.type} needs an offsets map")
    try:
        return {key: int(offset) for key, offset in offsets.items()}
    except (TypeError, ValueError) as ex:
        raise MalformedRequest(f"bad offset in {offsets!r}") from ex
