"""
Gossip broadcast: batching, neighbour selection and dissemination.
"""

import pytest

from meshnode import Envelope, InMemoryNetwork, MeshNode, MsgType, Protocol
from meshnode.engines import BroadcastEngine
from meshnode.errors import ErrorCode

from conftest import FAST, wait_until

IDS = [f"n{i}" for i in range(6)]


@pytest.fixture
def engine(recorder):
    node = Protocol(recorder, config=FAST)
    engine = BroadcastEngine(node)
    node.init("n1", IDS)
    engine.set_topology()
    return engine


def _request(type, msg_id, src="c1", **fields):
    return Envelope(src=src, dest="n1", type=type, msg_id=msg_id, payload=fields)


def test_neighbours_follow_the_tree(engine):
    # fanout 4 over n0..n5: n1 sits under n0 and has n5 as its only child
    assert engine.neighbors == ["n0", "n5"]


def test_accept_queues_fresh_values_for_every_neighbour(engine):
    assert engine.accept([1, 2]) == [1, 2]
    assert engine.accept([2, 3]) == [3]
    assert engine.pending_batches() == {"n0": [1, 2, 3], "n5": [1, 2, 3]}


def test_values_are_not_sent_back_where_they_came_from(engine):
    engine.accept([7], origin="n0")
    assert engine.pending_batches() == {"n5": [7]}


def test_flush_sends_one_reliable_batch_per_neighbour(engine, recorder):
    engine.accept([1])
    engine.accept([2])

    assert engine.flush() == 2
    assert engine.pending_batches() == {}
    for dest in ("n0", "n5"):
        [batch] = recorder.sent_to(dest)
        assert batch.type is MsgType.BATCH_BROADCAST
        assert batch["messages"] == [1, 2]
    assert len(engine.node.rpc.unacknowledged()) == 2

    # nothing queued, nothing sent
    assert engine.flush() == 0


def test_broadcast_replies_once_per_request(engine, recorder):
    engine.node.dispatch(_request(MsgType.BROADCAST, 10, message=42))
    engine.node.dispatch(_request(MsgType.BROADCAST, 11, message=42))

    replies = recorder.sent_to("c1")
    assert [r.type for r in replies] == [MsgType.BROADCAST_OK] * 2
    assert [r.in_reply_to for r in replies] == [10, 11]
    assert engine.known() == {42}
    assert engine.pending_batches() == {"n0": [42], "n5": [42]}


def test_broadcast_without_message_is_malformed(engine, recorder):
    engine.node.dispatch(_request(MsgType.BROADCAST, 3))

    [reply] = recorder.sent_to("c1")
    assert reply["code"] == ErrorCode.MALFORMED_REQUEST
    assert engine.node.fatal_error is None


def test_batch_is_acked_and_merged(engine, recorder):
    engine.node.dispatch(_request(MsgType.BATCH_BROADCAST, 8, src="n0", messages=[5, 6]))

    [ack] = recorder.sent_to("n0")
    assert ack.type is MsgType.BROADCAST_OK
    assert ack.in_reply_to == 8
    assert engine.known() == {5, 6}
    assert engine.pending_batches() == {"n5": [5, 6]}


def test_read_returns_every_known_value(engine, recorder):
    engine.accept([3, 1, 2])
    engine.node.dispatch(_request(MsgType.READ, 4))

    [reply] = recorder.sent_to("c1")
    assert reply.type is MsgType.READ_OK
    assert reply["messages"] == [1, 2, 3]


def test_topology_is_acknowledged_and_ignored(engine, recorder):
    engine.node.dispatch(_request(MsgType.TOPOLOGY, 2, topology={"n1": ["n2", "n3"]}))

    [reply] = recorder.sent_to("c1")
    assert reply.type is MsgType.TOPOLOGY_OK
    assert engine.neighbors == ["n0", "n5"]


def test_late_topology_keeps_queued_values(engine):
    engine.accept([9])
    engine.set_topology()
    assert engine.pending_batches() == {"n0": [9], "n5": [9]}


def test_new_neighbour_catches_up_on_known_values(recorder):
    node = Protocol(recorder, config=FAST)
    engine = BroadcastEngine(node)
    node.init("n0", ["n0"])
    engine.accept([1, 2])

    node.node_ids = ["n0", "n1"]
    engine.set_topology()
    assert engine.pending_batches() == {"n1": [1, 2]}


def _read(network, nid):
    return network.request("c1", nid, MsgType.READ)["messages"]


def _send_topology(network, ids):
    for nid in ids:
        reply = network.request("c0", nid, MsgType.TOPOLOGY, topology={n: [] for n in ids})
        assert reply.type is MsgType.TOPOLOGY_OK


def test_every_node_sees_every_value(network, cluster):
    ids = [f"n{i}" for i in range(13)]
    cluster("broadcast", ids)
    _send_topology(network, ids)

    for value, nid in enumerate(ids):
        reply = network.request("c1", nid, MsgType.BROADCAST, message=value)
        assert reply.type is MsgType.BROADCAST_OK

    expected = list(range(len(ids)))
    assert wait_until(lambda: all(_read(network, nid) == expected for nid in ids))


@pytest.mark.parametrize("codec", ["json", "msgpack"])
def test_dissemination_over_a_lossy_network(codec):
    network = InMemoryNetwork(codec, drop_rate=0.3, duplicate_rate=0.1, seed=11)
    ids = [f"n{i}" for i in range(8)]
    nodes = [MeshNode("broadcast", transport="inmemory", network=network, node_id=nid,
                      codec=codec, config=FAST, auto_start=True) for nid in ids]
    try:
        for nid in ids:
            network.request("c0", nid, MsgType.INIT, node_id=nid, node_ids=ids)
        _send_topology(network, ids)
        for value in range(20):
            network.request("c1", ids[value % len(ids)], MsgType.BROADCAST, message=value)

        expected = list(range(20))
        assert wait_until(lambda: all(_read(network, nid) == expected for nid in ids), timeout=10)
        assert network.dropped > 0
        # retries stop once every batch is acknowledged
        assert wait_until(lambda: all(not n.rpc.unacknowledged() for n in nodes), timeout=10)
    finally:
        for node in nodes:
            node.stop()
