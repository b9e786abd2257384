"""
Checkbox state for the category tree.

``toggle`` is the only way the checked flags change:

  1. flip the node
  2. force every descendant to the node's new value
  3. walk up: checking a child checks the parent once all its children
     are checked; unchecking a child unchecks the parent

There is no tri-state: a partially checked group keeps whatever flag it
had before, until one of its children is unchecked.
"""
from __future__ import annotations

import logging
from typing import Dict, FrozenSet

from .tree import CategoryTree

log = logging.getLogger(__name__)


class CategoryActivationState:
    def __init__(self, tree: CategoryTree):
        self.tree = tree
        self.checked: Dict[str, bool] = {n.id: False for n in tree.walk()}
        self.expanded: Dict[str, bool] = {n.id: False for n in tree.walk()}

    def is_checked(self, node_id: str) -> bool:
        self.tree.node(node_id)
        return self.checked[node_id]

    def toggle(self, node_id: str) -> bool:
        """Flip *node_id* and propagate; returns its new flag."""
        node = self.tree.node(node_id)
        value = not self.checked[node_id]
        self.checked[node_id] = value
        for child in self.tree.descendants(node_id):
            self.checked[child.id] = value

        parent = self.tree.parent(node_id)
        while parent is not None:
            if not value:
                self.checked[parent.id] = False
            elif all(self.checked[c.id] for c in parent.children):
                self.checked[parent.id] = True
            parent = self.tree.parent(parent.id)

        log.debug("Toggled %s → %s", node.id, value)
        return value

    def toggle_expanded(self, node_id: str) -> bool:
        self.tree.node(node_id)
        self.expanded[node_id] = not self.expanded[node_id]
        return self.expanded[node_id]

    def active_codes(self) -> FrozenSet[str]:
        """Category codes of every checked data-bearing node."""
        codes = set()
        for node in self.tree.walk():
            if node.codes and self.checked[node.id]:
                codes.update(node.codes)
        return frozenset(codes)

    def clear(self) -> None:
        for node_id in self.checked:
            self.checked[node_id] = False
