"""
meshnode CLI.

One command per workload. Each command runs a single node speaking the
line protocol on stdin/stdout until stdin closes or a fatal error occurs.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

import click

from meshnode import __version__
from meshnode.config import LOG_LEVEL, NodeConfig
from meshnode.errors import MeshError
from meshnode.factory import MeshNode
from meshnode.log import configure_logging, set_node_id

logger = logging.getLogger(__name__)


def _node_options(f):
    f = click.option("--log-level", default=LOG_LEVEL, show_default=True,
                     help="Log level for stderr diagnostics.")(f)
    f = click.option("--retry-interval", type=float, default=None,
                     help="Seconds between retries of unacknowledged messages.")(f)
    f = click.option("--rpc-timeout", type=float, default=None,
                     help="Give up on a correlated request after this many seconds.")(f)
    return f


def _run(workload: str, log_level: str, **overrides) -> None:
    configure_logging(log_level)
    config = NodeConfig.from_env().override(**overrides)
    node = MeshNode(workload, config=config)
    # stamp log lines before any workload hook (e.g. counter seeding) runs
    node.on_init(lambda: set_node_id(node.node_id), first=True)
    logger.info("starting %s node", workload)
    try:
        node.run()
    except MeshError as ex:
        logger.error("node stopped: %s", ex)
        sys.exit(1)


# ─── Main Group ──────────────────────────────────────────────────

@click.group()
@click.version_option(__version__, prog_name="meshnode")
def cli() -> None:
    """Distributed-systems workload nodes over stdin/stdout."""
    pass


@cli.command("echo")
@_node_options
def echo_cmd(log_level: str, retry_interval: Optional[float], rpc_timeout: Optional[float]) -> None:
    """Echo every request back."""
    _run("echo", log_level, retry_interval=retry_interval, rpc_timeout=rpc_timeout)


@cli.command("unique-ids")
@_node_options
def unique_ids_cmd(log_level: str, retry_interval: Optional[float], rpc_timeout: Optional[float]) -> None:
    """Generate cluster-unique ids."""
    _run("unique-ids", log_level, retry_interval=retry_interval, rpc_timeout=rpc_timeout)


@cli.command("broadcast")
@_node_options
@click.option("--flush-interval", type=float, default=None, help="Seconds between gossip batches.")
@click.option("--fanout", type=int, default=None, help="Children per node in the gossip tree.")
def broadcast_cmd(log_level: str, retry_interval: Optional[float], rpc_timeout: Optional[float],
                  flush_interval: Optional[float], fanout: Optional[int]) -> None:
    """Gossip broadcast over a fanout tree."""
    _run("broadcast", log_level, retry_interval=retry_interval, rpc_timeout=rpc_timeout,
         flush_interval=flush_interval, fanout=fanout)


@cli.command("counter")
@_node_options
@click.option("--kv-service", default=None, help="Name of the key-value service node.")
def counter_cmd(log_level: str, retry_interval: Optional[float], rpc_timeout: Optional[float],
                kv_service: Optional[str]) -> None:
    """Grow-only counter backed by a key-value service."""
    _run("counter", log_level, retry_interval=retry_interval, rpc_timeout=rpc_timeout,
         kv_service=kv_service)


@cli.command("kafka")
@_node_options
@click.option("--poll-page-size", type=int, default=None, help="Max entries per key in a poll reply.")
@click.option("--monotonic-commits/--last-write-wins", default=None,
              help="Ignore commits that move a committed offset backwards.")
def kafka_cmd(log_level: str, retry_interval: Optional[float], rpc_timeout: Optional[float],
              poll_page_size: Optional[int], monotonic_commits: Optional[bool]) -> None:
    """Append-only logs with committed offsets."""
    _run("kafka", log_level, retry_interval=retry_interval, rpc_timeout=rpc_timeout,
         poll_page_size=poll_page_size, monotonic_commits=monotonic_commits)


if __name__ == "__main__":
    cli()
