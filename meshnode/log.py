from __future__ import annotations
import logging
import sys
from typing import Optional, Union

_FORMAT = "%(asctime)s %(levelname)-7s [%(node)s] %(name)s: %(message)s"


class _NodeFilter(logging.Filter):
    """Stamps every record with the node id once init has arrived."""

    def __init__(self):
        super().__init__()
        self.node_id = "-"

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "node"):
            record.node = self.node_id
        return True


_node_filter = _NodeFilter()


def configure_logging(level: Union[int, str] = "INFO", stream=None) -> None:
    """Send meshnode logs to stderr. stdout carries the wire protocol."""
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(_FORMAT))
    handler.addFilter(_node_filter)
    root = logging.getLogger("meshnode")
    root.handlers[:] = [handler]
    root.setLevel(level.upper() if isinstance(level, str) else level)
    root.propagate = False


def set_node_id(node_id: Optional[str]) -> None:
    _node_filter.node_id = node_id or "-"
