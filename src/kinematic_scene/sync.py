"""Keeps derived structure in step with what the user edits.

Two things are derived rather than authored:

* collision shadows: a ``visual`` container flagged with
  ``attach_collisions`` owns a sibling ``collision`` container whose
  subtree mirrors every ``mesh``/``group`` below the visual, one shadow per
  source node (linked through ``components.mirror``);
* joint labels: the ``parent``/``child`` link labels stored on joint
  fragments follow the tree.

:func:`synchronize` is idempotent: running it on its own output returns
that output unchanged (``is`` identity).
"""

from typing import Dict, List, Optional, Set

from .chain import joint_child_link_id, joint_fragment, joint_parent_link_id, resolve_link_label
from .core import ops
from .core.factory import new_node_id
from .core.types import Components, Document, Mirror, Node, NodeInput, NodeKind

MIRRORABLE_KINDS = frozenset({NodeKind.MESH, NodeKind.GROUP})


def _descendants(nodes, root_id: str, prune=None) -> List[str]:
    """Pre-order descendant ids of ``root_id`` (root excluded).

    Nodes for which ``prune(node)`` is true are skipped with their subtrees.
    """
    out: List[str] = []
    root = nodes.get(root_id)
    if root is None:
        return out
    stack = list(reversed(root.children))
    while stack:
        node_id = stack.pop()
        node = nodes.get(node_id)
        if node is None or (prune is not None and prune(node)):
            continue
        out.append(node_id)
        stack.extend(reversed(node.children))
    return out


def _is_generated(node: Node) -> bool:
    # collision subtrees and shadows are never mirrored again
    return node.kind is NodeKind.COLLISION or node.components.mirror is not None


def _find_collision_sibling(doc: Document, visual: Node, claimed: Set[str]) -> Optional[Node]:
    nodes = doc.scene.nodes
    if visual.parent_id is not None:
        parent = nodes.get(visual.parent_id)
        siblings = parent.children if parent is not None else ()
    else:
        siblings = doc.scene.roots
    for sibling_id in siblings:
        sibling = nodes.get(sibling_id)
        if sibling is not None and sibling.kind is NodeKind.COLLISION and sibling_id not in claimed:
            return sibling
    return None


def _find_collision_by_sources(
    doc: Document, visual: Node, visual_descendants: Set[str], claimed: Set[str]
) -> Optional[Node]:
    """A free collision container that already shadows part of ``visual``."""
    nodes = doc.scene.nodes
    for node in nodes.values():
        if node.kind is not NodeKind.COLLISION or node.id in claimed:
            continue
        if _has_ancestor_in(doc, visual.id, {node.id}):
            continue
        for shadow_id in _descendants(nodes, node.id):
            mirror = nodes[shadow_id].components.mirror
            if mirror is not None and mirror.source_id in visual_descendants:
                return node
    return None


def _resolve_collision(doc: Document, visual: Node, visual_descendants: Set[str], claimed: Set[str]):
    collision = _find_collision_sibling(doc, visual, claimed)
    if collision is None:
        collision = _find_collision_by_sources(doc, visual, visual_descendants, claimed)
        if collision is not None and collision.parent_id != visual.parent_id:
            doc = ops.set_node_parent(doc, collision.id, visual.parent_id)
    if collision is None:
        collision_id = new_node_id()
        doc = ops.add_nodes(
            doc,
            [
                NodeInput(
                    id=collision_id,
                    name="Collision",
                    kind=NodeKind.COLLISION,
                    parent_id=visual.parent_id,
                    components=Components(transform=visual.transform),
                )
            ],
            keep_selection=True,
        )
        collision = doc.scene.nodes.get(collision_id)
    else:
        collision = doc.scene.nodes[collision.id]
    return doc, collision


def _update_shadow(doc: Document, shadow_id: str, source: Node) -> Document:
    shadow = doc.scene.nodes[shadow_id]
    components = shadow.components
    if shadow.transform != source.transform:
        components = components.replace(transform=source.transform)
    if components.mirror is None or components.mirror.source_id != source.id:
        components = components.replace(mirror=Mirror(source_id=source.id))
    updated = shadow.replace(
        name=source.name, kind=source.kind, source=source.source, components=components
    )
    if updated == shadow:
        return doc
    return ops.replace_node(doc, updated)


def _sync_visual(doc: Document, visual: Node, claimed: Set[str], kept: Set[str]) -> Document:
    source_nodes = doc.scene.nodes
    visual_descendants = _descendants(source_nodes, visual.id, prune=_is_generated)
    descendant_set = set(visual_descendants)

    doc, collision = _resolve_collision(doc, visual, descendant_set, claimed)
    if collision is None:
        return doc
    claimed.add(collision.id)
    if collision.transform != visual.transform:
        doc = ops.set_node_transform(doc, collision.id, visual.transform)

    existing: Dict[str, str] = {}
    collision_descendants = _descendants(doc.scene.nodes, collision.id)
    for shadow_id in collision_descendants:
        mirror = doc.scene.nodes[shadow_id].components.mirror
        if mirror is not None:
            existing.setdefault(mirror.source_id, shadow_id)

    used: Set[str] = set()
    # visual node id -> shadow that receives its mirrored children
    shadow_parent: Dict[str, str] = {visual.id: collision.id}
    # shadow parent -> its shadow children in source order
    expected_order: Dict[str, List[str]] = {}

    for source_id in visual_descendants:
        source = source_nodes[source_id]
        parent_shadow_id = shadow_parent.get(source.parent_id, collision.id)
        if source.kind not in MIRRORABLE_KINDS:
            # wrappers are transparent: their children attach one level up
            shadow_parent[source_id] = parent_shadow_id
            continue

        shadow_id = existing.get(source_id)
        if shadow_id is None or shadow_id in used:
            shadow_id = new_node_id()
            doc = ops.add_nodes(
                doc,
                [
                    NodeInput(
                        id=shadow_id,
                        name=source.name,
                        kind=source.kind,
                        parent_id=parent_shadow_id,
                        source=source.source,
                        components=Components(
                            transform=source.transform, mirror=Mirror(source_id=source_id)
                        ),
                    )
                ],
                keep_selection=True,
            )
        elif doc.scene.nodes[shadow_id].parent_id != parent_shadow_id:
            doc = ops.set_node_parent(doc, shadow_id, parent_shadow_id)
        doc = _update_shadow(doc, shadow_id, source)

        used.add(shadow_id)
        kept.add(shadow_id)
        shadow_parent[source_id] = shadow_id
        expected_order.setdefault(parent_shadow_id, []).append(shadow_id)

    stale = set()
    for shadow_id in collision_descendants:
        mirror = doc.scene.nodes[shadow_id].components.mirror
        if mirror is None or mirror.source_id not in descendant_set or shadow_id not in used:
            stale.add(shadow_id)
    for shadow_id in collision_descendants:
        if shadow_id in stale and not _has_ancestor_in(doc, shadow_id, stale):
            doc = ops.remove_subtree(doc, shadow_id)

    for parent_id, ordered in expected_order.items():
        parent = doc.scene.nodes[parent_id]
        rest = [c for c in parent.children if c not in ordered]
        doc = ops.set_child_order(doc, parent_id, ordered + rest)
    return doc


def _has_ancestor_in(doc: Document, node_id: str, ids: Set[str]) -> bool:
    node = doc.scene.nodes.get(node_id)
    current = node.parent_id if node is not None else None
    while current is not None:
        if current in ids:
            return True
        parent = doc.scene.nodes.get(current)
        current = parent.parent_id if parent is not None else None
    return False


def _prune_orphan_shadows(doc: Document, kept: Set[str]) -> Document:
    orphans = [
        node.id
        for node in doc.scene.nodes.values()
        if node.components.mirror is not None and node.id not in kept
    ]
    orphan_set = set(orphans)
    # topmost first; nested orphans go with their ancestor
    for shadow_id in orphans:
        if not _has_ancestor_in(doc, shadow_id, orphan_set):
            doc = ops.remove_subtree(doc, shadow_id)
    return doc


def sync_joint_labels(doc: Document) -> Document:
    """Re-derive joint fragment ``parent``/``child`` labels from the tree."""
    nodes = doc.scene.nodes
    updates: Dict[str, Node] = {}
    for node in nodes.values():
        if node.kind is not NodeKind.JOINT:
            continue
        fragment = joint_fragment(node)
        if fragment is None:
            continue
        updated = fragment

        parent_id = joint_parent_link_id(nodes, node.id)
        if parent_id is not None:
            label = resolve_link_label(nodes[parent_id])
            if updated.parent != label:
                updated = updated.replace(parent=label)

        child_id = joint_child_link_id(nodes, node.id)
        if child_id is not None:
            label = resolve_link_label(nodes[child_id])
            if label and updated.child != label:
                updated = updated.replace(child=label)

        if updated is not fragment:
            updates[node.id] = node.replace(components=node.components.replace(robot=updated))

    if not updates:
        return doc
    next_nodes = dict(nodes)
    next_nodes.update(updates)
    return ops.touch_metadata(doc.replace(scene=doc.scene.replace(nodes=next_nodes)))


def synchronize(doc: Document) -> Document:
    """Bring collision shadows and joint labels up to date.

    Flagged visuals are processed in document order. Each claims one
    collision container, so two visuals never share one. A visual that an
    earlier pass removed (because it sat inside a collision subtree) is
    skipped. Shadows no flagged visual maintains any more (their source was
    deleted, or their visual was removed or unflagged) are pruned.
    Shadow creation never changes the selection.
    """
    visual_ids = [
        node.id
        for node in doc.scene.nodes.values()
        if node.kind is NodeKind.VISUAL
        and node.components.visual is not None
        and node.components.visual.attach_collisions
    ]
    claimed: Set[str] = set()
    kept: Set[str] = set()
    for visual_id in visual_ids:
        visual = doc.scene.nodes.get(visual_id)
        if visual is None:
            continue
        doc = _sync_visual(doc, visual, claimed, kept)
    doc = _prune_orphan_shadows(doc, kept)
    return sync_joint_labels(doc)
