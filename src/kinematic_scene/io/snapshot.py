"""Seed a scene from a renderer snapshot.

A snapshot is the flat structure a 3D view reports for the objects it
already holds::

    {"nodes": [{"id", "name", "parentId", "children", "kind"}, ...],
     "roots": [id, ...]}

Both ``parentId`` and ``parent_id`` spellings are accepted. Nodes arrive
without components; unknown kinds map to ``NodeKind.OTHER``.
"""

from typing import Any, Dict, List, Mapping, Optional

from ..core.naming import FALLBACK_NAMES, resolve_node_name
from ..core.ops import sanitize_parent_for_kind
from ..core.types import Node, NodeKind, Scene


def _kind(value) -> NodeKind:
    try:
        return NodeKind(value)
    except ValueError:
        return NodeKind.OTHER


def _closes_cycle(parents: Dict[str, Optional[str]], node_id: str) -> bool:
    seen = set()
    current = parents[node_id]
    while current is not None and current not in seen:
        if current == node_id:
            return True
        seen.add(current)
        current = parents[current]
    return False


def snapshot_to_scene(snapshot: Mapping[str, Any]) -> Scene:
    """Build a :class:`Scene` with no selection from a snapshot mapping.

    ``parentId`` is authoritative: each node's ``children`` are rebuilt from
    it, keeping the snapshot's order where it lists them. Parents that
    break the kind rules, are unknown or close a cycle are dropped, which
    makes the node a root. Names are made unique in snapshot order.
    """
    raw_nodes = {raw["id"]: raw for raw in snapshot.get("nodes", ())}
    shells = {
        node_id: Node(id=node_id, name="", kind=_kind(raw.get("kind", "other")))
        for node_id, raw in raw_nodes.items()
    }

    parents: Dict[str, Optional[str]] = {}
    for node_id, raw in raw_nodes.items():
        requested = raw.get("parentId", raw.get("parent_id"))
        if requested == node_id:
            requested = None
        parents[node_id] = sanitize_parent_for_kind(shells, requested, shells[node_id].kind)
    for node_id in raw_nodes:
        if _closes_cycle(parents, node_id):
            parents[node_id] = None

    children: Dict[str, List[str]] = {node_id: [] for node_id in raw_nodes}
    for node_id, raw in raw_nodes.items():
        for child_id in raw.get("children", ()):
            if parents.get(child_id) == node_id and child_id not in children[node_id]:
                children[node_id].append(child_id)
    for node_id, parent_id in parents.items():
        if parent_id is not None and node_id not in children[parent_id]:
            children[parent_id].append(node_id)

    roots: List[str] = []
    for root_id in list(snapshot.get("roots", ())) + list(raw_nodes):
        if root_id in parents and parents[root_id] is None and root_id not in roots:
            roots.append(root_id)

    nodes: Dict[str, Node] = {}
    for node_id, raw in raw_nodes.items():
        kind = shells[node_id].kind
        name = (raw.get("name") or "").strip() or FALLBACK_NAMES.get(kind, "Object")
        nodes[node_id] = Node(
            id=node_id,
            name=resolve_node_name(nodes, kind, name),
            kind=kind,
            parent_id=parents[node_id],
            children=tuple(children[node_id]),
        )
    return Scene(nodes=nodes, roots=tuple(roots), selected_id=None)
