"""
meshnode configuration.

Module-level defaults come from the environment; NodeConfig bundles them
for a single node so tests and the CLI can override fields per instance.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Optional


def _env_float(name: str, default: str) -> float:
    return float(os.environ.get(name, default))


def _env_optional_float(name: str) -> Optional[float]:
    raw = os.environ.get(name, "")
    return float(raw) if raw else None


def _env_bool(name: str, default: str = "0") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


# Retry / gossip timing (seconds)
RETRY_INTERVAL = _env_float("MESHNODE_RETRY_INTERVAL", "1.0")
FLUSH_INTERVAL = _env_float("MESHNODE_FLUSH_INTERVAL", "0.15")

# Correlated RPCs retry forever unless a deadline is set
RPC_TIMEOUT = _env_optional_float("MESHNODE_RPC_TIMEOUT")

# Gossip tree
FANOUT = int(os.environ.get("MESHNODE_FANOUT", "4"))

# Log workload
POLL_PAGE_SIZE = int(os.environ.get("MESHNODE_POLL_PAGE_SIZE", "20"))
MONOTONIC_COMMITS = _env_bool("MESHNODE_MONOTONIC_COMMITS")

# Counter workload
KV_SERVICE = os.environ.get("MESHNODE_KV_SERVICE", "seq-kv")
COUNTER_KEY = os.environ.get("MESHNODE_COUNTER_KEY", "counter")

# Request handler pool
WORKERS = int(os.environ.get("MESHNODE_WORKERS", "32"))

LOG_LEVEL = os.environ.get("MESHNODE_LOG_LEVEL", "INFO")


@dataclass(frozen=True)
class NodeConfig:
    retry_interval: float = RETRY_INTERVAL
    flush_interval: float = FLUSH_INTERVAL
    rpc_timeout: Optional[float] = RPC_TIMEOUT
    fanout: int = FANOUT
    poll_page_size: int = POLL_PAGE_SIZE
    monotonic_commits: bool = MONOTONIC_COMMITS
    kv_service: str = KV_SERVICE
    counter_key: str = COUNTER_KEY
    workers: int = WORKERS

    @classmethod
    def from_env(cls) -> "NodeConfig":
        """Re-read the environment (the module constants are frozen at import)."""
        return cls(
            retry_interval=_env_float("MESHNODE_RETRY_INTERVAL", "1.0"),
            flush_interval=_env_float("MESHNODE_FLUSH_INTERVAL", "0.15"),
            rpc_timeout=_env_optional_float("MESHNODE_RPC_TIMEOUT"),
            fanout=int(os.environ.get("MESHNODE_FANOUT", "4")),
            poll_page_size=int(os.environ.get("MESHNODE_POLL_PAGE_SIZE", "20")),
            monotonic_commits=_env_bool("MESHNODE_MONOTONIC_COMMITS"),
            kv_service=os.environ.get("MESHNODE_KV_SERVICE", "seq-kv"),
            counter_key=os.environ.get("MESHNODE_COUNTER_KEY", "counter"),
            workers=int(os.environ.get("MESHNODE_WORKERS", "32")),
        )

    def override(self, **changes) -> "NodeConfig":
        """Return a copy with every non-None keyword applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})
