
import time

from meshnode import InMemoryNetwork, KVService, MeshNode, MsgType, NodeConfig
from meshnode.log import configure_logging

CONFIG = NodeConfig(retry_interval=0.2, flush_interval=0.05)

def start(net, workload, ids, codec="json"):
    nodes = [MeshNode(workload, transport="inmemory", codec=codec, network=net,
                      node_id=nid, config=CONFIG, auto_start=True) for nid in ids]
    for nid in ids:
        net.request("c0", nid, MsgType.INIT, node_id=nid, node_ids=ids)
    return nodes

def gossip():
    # Five broadcast nodes on a lossy network, framed with msgpack
    net = InMemoryNetwork("msgpack", drop_rate=0.1, seed=1)
    ids = [f"n{i}" for i in range(5)]
    nodes = start(net, "broadcast", ids, codec="msgpack")
    for nid in ids:
        net.request("c0", nid, MsgType.TOPOLOGY, topology={})

    for value in range(10):
        net.request("c1", ids[value % len(ids)], MsgType.BROADCAST, message=value)

    time.sleep(1.0)
    for nid in ids:
        print(nid, "saw", net.request("c2", nid, MsgType.READ)["messages"])
    print("frames dropped:", net.dropped)

    for node in nodes:
        node.stop()

def counter():
    # Three counter nodes sharing one seq-kv service
    net = InMemoryNetwork()
    kv = net.attach_service(KVService("seq-kv"))
    ids = ["n0", "n1", "n2"]
    nodes = start(net, "counter", ids)

    for delta in range(1, 6):
        net.request("c1", ids[delta % len(ids)], MsgType.ADD, delta=delta)

    for nid in ids:
        print(nid, "reads", net.request("c2", nid, MsgType.READ)["value"])
    print("store:", kv.snapshot())

    for node in nodes:
        node.stop()

def main():
    configure_logging("INFO")
    gossip()
    counter()

if __name__ == "__main__":
    main()
