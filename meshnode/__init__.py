"""
Public API:
- MeshNode: one-liner factory (workload + transport + codec -> Protocol)
- Protocol: node identity, msg_id allocation and dispatch
- RetryManager: passive retry until ack, and request/await-reply with active retry
- MessageBuilder: fluent builder producing valid envelopes
- Envelope, MsgType: wire-level types
- Transport: abstract class transports must implement
- InMemoryNetwork: in-process network with fault injection, for simulation and tests
- KVService: in-process linearizable key-value service
- pack_frame, unpack_frame: envelope <-> encoded frame
"""

__version__ = "0.1.0"

# Core runtime
from .protocol import Protocol
from .rpc import RetryManager

# Builder & wire types
from .builder import MessageBuilder
from .message import Envelope, MsgType

# Transport contract
from .transport import Transport
from .transports.inmemory import InMemoryNetwork, InMemoryTransport
from .transports.stdio import StdioTransport

# Framing helpers
from .wire import pack_frame, unpack_frame

from .config import NodeConfig
from .services import KVService
from .factory import MeshNode

__all__ = [
    "MeshNode",
    "Protocol",
    "RetryManager",
    "MessageBuilder",
    "Envelope",
    "MsgType",
    "Transport",
    "InMemoryNetwork",
    "InMemoryTransport",
    "StdioTransport",
    "KVService",
    "NodeConfig",
    "pack_frame",
    "unpack_frame",
]
