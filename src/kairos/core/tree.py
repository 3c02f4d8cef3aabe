"""Plan tree: an arena of plan nodes keyed by ID.

Storage only records parent references, so children are indexed here and
every walk is iterative. A corrupted parent chain that loops back on itself
is cut at the first repeated node.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from datetime import date

from kairos.models.project import PlanNode
from kairos.models.work_item import WorkItem

logger = logging.getLogger(__name__)


class PlanTree:
    """Read-only view over one or more projects' plan nodes."""

    def __init__(self, nodes: Iterable[PlanNode], items: Iterable[WorkItem] = ()) -> None:
        self._nodes: dict[str, PlanNode] = {n.id: n for n in nodes}
        self._children: dict[str, list[str]] = defaultdict(list)
        self._items_by_node: dict[str, list[WorkItem]] = defaultdict(list)

        for node in sorted(self._nodes.values(), key=lambda n: (n.seq, n.id)):
            if node.parent_id and node.parent_id in self._nodes:
                self._children[node.parent_id].append(node.id)
        for item in items:
            self._items_by_node[item.node_id].append(item)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def get(self, node_id: str) -> PlanNode | None:
        return self._nodes.get(node_id)

    def roots(self) -> list[PlanNode]:
        return [
            n
            for n in sorted(self._nodes.values(), key=lambda n: (n.seq, n.id))
            if not n.parent_id or n.parent_id not in self._nodes
        ]

    def children(self, node_id: str) -> list[PlanNode]:
        return [self._nodes[c] for c in self._children.get(node_id, [])]

    def ancestors(self, node_id: str) -> list[PlanNode]:
        """Nodes from ``node_id`` up to its root, nearest first (inclusive)."""
        chain: list[PlanNode] = []
        seen: set[str] = set()
        current = self._nodes.get(node_id)
        while current is not None:
            if current.id in seen:
                logger.warning("Cycle in plan node parents at %s", current.id)
                break
            seen.add(current.id)
            chain.append(current)
            current = self._nodes.get(current.parent_id) if current.parent_id else None
        return chain

    def descendants(self, node_id: str) -> list[PlanNode]:
        """``node_id`` and every node below it, depth-first (inclusive)."""
        if node_id not in self._nodes:
            return []
        result: list[PlanNode] = []
        seen: set[str] = set()
        stack = [node_id]
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            result.append(self._nodes[current])
            stack.extend(reversed(self._children.get(current, [])))
        return result

    def items_under(self, node_id: str) -> list[WorkItem]:
        """Work items of the node and all of its descendants."""
        items: list[WorkItem] = []
        for node in self.descendants(node_id):
            items.extend(self._items_by_node.get(node.id, []))
        return items

    def is_complete(self, node_id: str) -> bool:
        """A node is complete when every item beneath it is terminal."""
        return all(item.is_terminal for item in self.items_under(node_id))

    def effective_not_before(self, node_id: str) -> date | None:
        """Latest ``not_before`` along the ancestor chain, or None."""
        dates = [n.not_before for n in self.ancestors(node_id) if n.not_before]
        return max(dates) if dates else None

    def effective_due_date(self, node_id: str) -> date | None:
        """Earliest ``due_date`` along the ancestor chain, or None."""
        dates = [n.due_date for n in self.ancestors(node_id) if n.due_date]
        return min(dates) if dates else None
