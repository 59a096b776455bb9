
from __future__ import annotations
from typing import Any, Iterable, Optional, Union

from .codecs import Codecs, Codec
from .config import NodeConfig
from .engines import WORKLOADS
from .protocol import Protocol
from .transport import Transport

def MeshNode(workloads: Union[str, Iterable[str]],
             *,
             transport: Union[str, Transport] = "stdio",
             codec: Union[str, Codec] = "json",
             config: Optional[NodeConfig] = None,
             network: Any = None,
             node_id: Optional[str] = None,
             auto_start: bool = False) -> Protocol:
    """
    One-liner factory:
      MeshNode("broadcast").run()                                   # stdin/stdout node
      MeshNode("counter", transport="inmemory", network=net, node_id="n0", auto_start=True)
      MeshNode(["echo", "unique-ids"], transport=my_transport, codec="msgpack")

    - workloads: one workload name or several ("echo", "unique-ids", "broadcast", "counter", "kafka")
    - transport: "stdio" | "inmemory" | Transport instance
    - codec: "json" | "msgpack" | Codec instance (stdio needs a line-safe codec)
    - network/node_id: required for the in-memory transport
    - auto_start: start the reader, handler pool and tickers immediately
    """
    codec_obj = Codecs.resolve(codec)

    # Resolve transport
    if isinstance(transport, str):
        tlabel = transport.lower()
        if tlabel == "stdio":
            from .transports.stdio import StdioTransport
            if not codec_obj.line_safe:
                raise ValueError(f"codec {codec_obj.name!r} cannot be framed as lines on stdio")
            t = StdioTransport()
        elif tlabel == "inmemory":
            if network is None or node_id is None:
                raise ValueError("the in-memory transport needs network= and node_id=")
            t = network.transport(node_id)
        else:
            raise ValueError(f"Unknown transport label: {transport}")
    else:
        t = transport

    node = Protocol(t, codec=codec_obj, config=config or NodeConfig.from_env())

    names = [workloads] if isinstance(workloads, str) else list(workloads)
    for name in names:
        try:
            engine_cls = WORKLOADS[name]
        except KeyError:
            raise ValueError(f"Unknown workload: {name}") from None
        node.engines[name] = engine_cls(node)

    if auto_start:
        node.start()

    return node
