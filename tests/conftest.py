import threading
import time

import pytest

from meshnode import InMemoryNetwork, KVService, MeshNode, MsgType, NodeConfig, Transport, unpack_frame

# Short intervals so retry / gossip behaviour shows up within a test's lifetime
FAST = NodeConfig(retry_interval=0.05, flush_interval=0.02, workers=8)


def wait_until(predicate, timeout: float = 5.0, interval: float = 0.01) -> bool:
    """Poll `predicate` until it is truthy or `timeout` passes."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


@pytest.fixture
def network():
    return InMemoryNetwork(seed=7)


@pytest.fixture
def kv(network):
    return network.attach_service(KVService("seq-kv"))


@pytest.fixture
def cluster(network):
    """Start workload nodes on the in-memory network and init them from client c0."""
    started = []

    def spawn(workload, node_ids, config=FAST):
        nodes = {}
        for nid in node_ids:
            node = MeshNode(workload, transport="inmemory", network=network, node_id=nid,
                            config=config, auto_start=True)
            started.append(node)
            nodes[nid] = node
        for nid in node_ids:
            reply = network.request("c0", nid, MsgType.INIT, node_id=nid, node_ids=list(node_ids))
            assert reply.type == MsgType.INIT_OK
        return nodes

    yield spawn

    for node in started:
        node.stop()


class RecordingTransport(Transport):
    """Keeps every emitted envelope; never delivers anything."""

    def __init__(self):
        self.sent = []
        self._lock = threading.Lock()

    def start(self):
        pass

    def stop(self):
        pass

    def send(self, dest, frame):
        with self._lock:
            self.sent.append(unpack_frame(frame))

    def frames(self):
        return iter(())

    def sent_to(self, dest):
        with self._lock:
            return [env for env in self.sent if env.dest == dest]


@pytest.fixture
def recorder():
    return RecordingTransport()
