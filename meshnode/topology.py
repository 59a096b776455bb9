from __future__ import annotations
from typing import List, Optional, Sequence

DEFAULT_FANOUT = 4


def tree_parent(index: int, fanout: int = DEFAULT_FANOUT) -> Optional[int]:
    if index == 0:
        return None
    return (index - 1) // fanout


def tree_children(index: int, size: int, fanout: int = DEFAULT_FANOUT) -> range:
    first = fanout * index + 1
    return range(min(first, size), min(first + fanout, size))


def tree_neighbors(node_id: str, node_ids: Sequence[str], fanout: int = DEFAULT_FANOUT) -> List[str]:
    """
    Neighbours of `node_id` in the fanout tree over the sorted node ids:
    its parent (if any) followed by its children. At most fanout + 1 entries.
    """
    if fanout < 1:
        raise ValueError(f"fanout must be positive, got {fanout}")
    ordered = sorted(node_ids)
    try:
        i = ordered.index(node_id)
    except ValueError:
        raise ValueError(f"{node_id!r} is not one of the cluster's nodes") from None

    parent = tree_parent(i, fanout)
    neighbors = [] if parent is None else [ordered[parent]]
    neighbors.extend(ordered[c] for c in tree_children(i, len(ordered), fanout))
    return neighbors
