"""Tree view over the flat parent-name relation.

The forest is derived on every request and never persisted. Both the
narrative export and UI consumers build it from the same snapshot.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any

from .models import Concept, name_key

log = logging.getLogger(__name__)


@dataclass
class TreeNode:
    concept: Concept
    children: list[TreeNode] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Nested JSON-ready representation (camelCase concept fields)."""
        root: dict[str, Any] = {}
        stack: list[tuple[TreeNode, dict[str, Any]]] = [(self, root)]
        while stack:
            node, out = stack.pop()
            out["concept"] = node.concept.model_dump(mode="json", by_alias=True, exclude_none=True)
            out["children"] = [{} for _ in node.children]
            stack.extend(zip(node.children, out["children"]))
        return root


def build_forest(concepts: Sequence[Concept]) -> list[TreeNode]:
    """Project concepts into a forest of TreeNodes.

    A concept is attached under the node whose name matches its parent
    (case-insensitively) in this same snapshot; otherwise it is a root. That
    includes dangling parents and self-references. Roots and siblings keep
    input order. If the snapshot contains a cycle, it is broken at the first
    member in input order so every concept still appears exactly once.
    """
    nodes: dict[str, TreeNode] = {}
    order: list[tuple[str, TreeNode]] = []
    for concept in concepts:
        node = TreeNode(concept)
        key = concept.key
        if key in nodes:
            # Duplicate names should not exist; keep the extra one as a root
            order.append(("", node))
            continue
        nodes[key] = node
        order.append((key, node))

    parent_of: dict[str, str | None] = {}
    for key, node in order:
        if not key:
            continue
        parent = node.concept.parent
        parent_key = name_key(parent) if parent else None
        if parent_key == key or parent_key not in nodes:
            parent_key = None
        parent_of[key] = parent_key

    for key, node in order:
        if key and _closes_cycle(key, parent_of):
            log.warning("Parent cycle through '%s'; treating it as a root", node.concept.name)
            parent_of[key] = None

    roots: list[TreeNode] = []
    for key, node in order:
        parent_key = parent_of.get(key) if key else None
        if parent_key is None:
            roots.append(node)
        else:
            nodes[parent_key].children.append(node)
    return roots


def _closes_cycle(start: str, parent_of: dict[str, str | None]) -> bool:
    seen = {start}
    current = parent_of.get(start)
    while current is not None:
        if current in seen:
            return current == start
        seen.add(current)
        current = parent_of.get(current)
    return False


def walk_forest(roots: Sequence[TreeNode]) -> Iterator[tuple[TreeNode, int]]:
    """Pre-order traversal yielding (node, depth), depth 0 for roots."""
    stack: list[tuple[TreeNode, int]] = [(node, 0) for node in reversed(roots)]
    while stack:
        node, depth = stack.pop()
        yield node, depth
        stack.extend((child, depth + 1) for child in reversed(node.children))


def forest_size(roots: Sequence[TreeNode]) -> int:
    return sum(1 for _ in walk_forest(roots))
