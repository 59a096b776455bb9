from .broadcast import BroadcastEngine
from .counter import CounterEngine
from .echo import EchoEngine
from .guid import GuidEngine
from .kafka import KafkaEngine, PartitionLog

# Workload name -> engine class
WORKLOADS = {
    "echo": EchoEngine,
    "unique-ids": GuidEngine,
    "broadcast": BroadcastEngine,
    "counter": CounterEngine,
    "kafka": KafkaEngine,
}

__all__ = [
    "BroadcastEngine",
    "CounterEngine",
    "EchoEngine",
    "GuidEngine",
    "KafkaEngine",
    "PartitionLog",
    "WORKLOADS",
]
