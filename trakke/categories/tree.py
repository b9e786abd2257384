"""
Hierarchical category tree shown as a checkbox list.

Leaf (data-bearing) nodes carry category codes; group nodes only own
children.  A node knows its parent by id, so the tree stays a plain
owned-children structure with a lookup table beside it.

Usage
-----
    tree = default_tree()
    tree.node("war_memorials").codes       # ("war_memorials",)
    tree.parent("war_memorials").id        # "heritage"
    tree = load_category_tree("categories.json")
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Union

from ..errors import CategoryTreeError
from .catalog import style_for

log = logging.getLogger(__name__)


@dataclass
class CategoryNode:
    id: str
    label: str
    codes: tuple = ()                  # category codes this node activates
    icon: str = ""
    color: str = ""
    children: List["CategoryNode"] = field(default_factory=list)
    parent_id: Optional[str] = None    # filled in by CategoryTree

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def as_dict(self) -> dict:
        d = {"id": self.id, "label": self.label}
        if self.codes:
            d["codes"] = list(self.codes)
        if self.icon:
            d["icon"] = self.icon
        if self.color:
            d["color"] = self.color
        if self.children:
            d["children"] = [c.as_dict() for c in self.children]
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "CategoryNode":
        try:
            node_id = str(d["id"])
            label = str(d.get("label") or d.get("name") or node_id)
        except (KeyError, TypeError) as exc:
            raise CategoryTreeError(f"bad category node {d!r}") from exc
        codes = tuple(d.get("codes") or d.get("poiTypes") or ())
        return cls(
            id=node_id,
            label=label,
            codes=codes,
            icon=d.get("icon", ""),
            color=d.get("color", "") or (style_for(codes[0]).color if codes else ""),
            children=[cls.from_dict(c) for c in d.get("children") or []],
        )


class CategoryTree:
    """Owns the root nodes and an id → node index.

    Raises CategoryTreeError on duplicate ids or a node reachable twice.
    """

    def __init__(self, roots: Sequence[CategoryNode]):
        self.roots: List[CategoryNode] = list(roots)
        self._index: Dict[str, CategoryNode] = {}
        seen_objects = set()
        stack = [(root, None) for root in reversed(self.roots)]
        while stack:
            node, parent_id = stack.pop()
            if id(node) in seen_objects:
                raise CategoryTreeError(f"node {node.id!r} appears twice (cycle?)")
            seen_objects.add(id(node))
            if node.id in self._index:
                raise CategoryTreeError(f"duplicate category id {node.id!r}")
            node.parent_id = parent_id
            self._index[node.id] = node
            stack.extend((child, node.id) for child in reversed(node.children))

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._index

    def __iter__(self) -> Iterator[CategoryNode]:
        return self.walk()

    def node(self, node_id: str) -> CategoryNode:
        try:
            return self._index[node_id]
        except KeyError:
            raise CategoryTreeError(f"unknown category {node_id!r}") from None

    def parent(self, node_id: str) -> Optional[CategoryNode]:
        pid = self.node(node_id).parent_id
        return self._index[pid] if pid is not None else None

    def descendants(self, node_id: str) -> Iterator[CategoryNode]:
        stack = list(self.node(node_id).children)
        while stack:
            node = stack.pop()
            yield node
            stack.extend(node.children)

    def walk(self) -> Iterator[CategoryNode]:
        """Depth-first, in display order."""
        stack = list(reversed(self.roots))
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def has_data(self, node_id: str) -> bool:
        node = self.node(node_id)
        return bool(node.codes) or any(d.codes for d in self.descendants(node_id))

    def all_codes(self) -> List[str]:
        codes: List[str] = []
        for node in self.walk():
            for code in node.codes:
                if code not in codes:
                    codes.append(code)
        return codes

    def as_list(self) -> List[dict]:
        return [r.as_dict() for r in self.roots]


def _leaf(code: str, label: str, icon: str) -> CategoryNode:
    return CategoryNode(id=code, label=label, codes=(code,), icon=icon,
                        color=style_for(code).color)


def default_tree() -> CategoryTree:
    return CategoryTree([
        CategoryNode("heritage", "Historiske steder", icon="castle", children=[
            _leaf("war_memorials", "Krigsminner", "military_tech"),
            _leaf("caves", "Huler", "landscape"),
        ]),
        CategoryNode("nature", "Naturperler", icon="nature", children=[
            _leaf("waterfalls", "Fosser", "water"),
            _leaf("viewpoints", "Utsiktspunkter og tårn", "visibility"),
        ]),
        CategoryNode("activities", "Aktiviteter", icon="local_fire_department", children=[
            _leaf("fire_pits", "Bålplasser", "local_fire_department"),
        ]),
        CategoryNode("accommodation", "Sove", icon="cabin", children=[
            _leaf("wilderness_shelter", "Gapahuk/vindskjul", "cottage"),
        ]),
        CategoryNode("preparedness", "Beredskap", icon="shield", children=[
            _leaf("emergency_shelters", "Offentlige tilfluktsrom", "shield"),
        ]),
        CategoryNode("transport", "Transport", icon="directions_bus", children=[
            _leaf("bus_stops", "Bussholdeplasser", "directions_bus"),
            _leaf("train_stations", "Togstasjoner", "train"),
        ]),
        CategoryNode("trails", "Turruter", icon="hiking", children=[
            _leaf("trail_hiking", "Fotruter", "hiking"),
            _leaf("trail_skiing", "Skiløyper", "downhill_skiing"),
            _leaf("trail_cycling", "Sykkelruter", "directions_bike"),
            _leaf("trail_all", "Alle friluftsruter", "route"),
        ]),
        CategoryNode("forest", "Naturskog", icon="forest", children=[
            _leaf("forest_pre_1940", "Skog etablert før 1940", "forest"),
            _leaf("forest_probability", "Naturskogssannsynlighet", "forest"),
            _leaf("forest_proximity", "Naturskogsnærhet", "forest"),
        ]),
    ])


def load_category_tree(path: Union[str, Path, None] = None) -> CategoryTree:
    """Load a tree from a JSON list of nodes; the built-in tree if *path* is None."""
    if path is None:
        return default_tree()
    with Path(path).open("r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("categories", [])
    tree = CategoryTree([CategoryNode.from_dict(d) for d in data])
    log.info("Loaded category tree from %s (%d nodes)", path, sum(1 for _ in tree.walk()))
    return tree
