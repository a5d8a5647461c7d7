"""Dependency layering over an application graph.

A module may be placed for a request once every module feeding it over an
UP edge, and every module it sends to over a DOWN edge, is already placed
for that same request.
"""

from __future__ import annotations

from collections import deque
from typing import Iterable, List, Set

from fogplace.application import Application, Direction


def _eligible(app: Application, name: str, placed: Set[str]) -> bool:
    for edge in app.edges:
        if edge.direction == Direction.DOWN and edge.source == name and edge.destination not in placed:
            return False
        if edge.direction == Direction.UP and edge.destination == name and edge.source not in placed:
            return False
    return True


def next_layer(app: Application, placed: Iterable[str]) -> List[str]:
    """Modules not yet placed whose neighbours are all placed, in module order."""
    placed_set = set(placed)
    return [
        name
        for name in app.module_names()
        if name not in placed_set and _eligible(app, name, placed_set)
    ]


def all_remaining(app: Application, placed: Iterable[str]) -> List[str]:
    """Breadth-first closure of ``next_layer``.

    Each dequeued module is treated as placed before the next layer is
    computed. The caller's collection is left untouched.
    """
    assumed = set(placed)
    ordered: List[str] = []
    seen: Set[str] = set()
    queue = deque(next_layer(app, assumed))
    while queue:
        name = queue.popleft()
        if name in seen:
            continue
        seen.add(name)
        ordered.append(name)
        assumed.add(name)
        for nxt in next_layer(app, assumed):
            if nxt not in seen:
                queue.append(nxt)
    return ordered
