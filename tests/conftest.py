"""Shared builders and invariant checks for the test suite."""

import hypothesis
import pytest

from kinematic_scene.core import ops
from kinematic_scene.core.factory import create_empty_document
from kinematic_scene.core.naming import is_name_exempt
from kinematic_scene.core.types import (
    Components,
    JointFragment,
    LinkFragment,
    NodeInput,
    NodeKind,
    PrimitiveSource,
    Transform,
    VisualFlags,
)

hypothesis.settings.register_profile("ci", max_examples=25, deadline=None)
hypothesis.settings.load_profile("ci")


def add(doc, name, kind, parent_id=None, components=None, source=None, node_id=None):
    """Add one node and return ``(doc, id)``."""
    node_id = node_id or f"{kind.value}-{name}-{len(doc.scene.nodes)}"
    doc = ops.add_node(
        doc,
        NodeInput(
            id=node_id, name=name, kind=kind, parent_id=parent_id, components=components, source=source
        ),
    )
    return doc, node_id


def find_by_name(doc, name):
    matches = [n for n in doc.scene.nodes.values() if n.name == name]
    assert len(matches) == 1, f"expected one node named {name!r}, found {len(matches)}"
    return matches[0]


def children_of_kind(doc, parent_id, kind):
    parent = doc.scene.nodes[parent_id]
    return [doc.scene.nodes[c] for c in parent.children if doc.scene.nodes[c].kind is kind]


def _has_ancestor(nodes, node_id, predicate):
    current = nodes[node_id].parent_id
    while current is not None:
        if predicate(nodes[current]):
            return True
        current = nodes[current].parent_id
    return False


def _is_flagged_visual(node):
    flags = node.components.visual
    return node.kind is NodeKind.VISUAL and flags is not None and flags.attach_collisions


def assert_mirror_integrity(doc):
    """Every shadow sits in a collision and tracks a live source under a flagged visual."""
    nodes = doc.scene.nodes
    for node in nodes.values():
        mirror = node.components.mirror
        if mirror is None:
            continue
        source = nodes.get(mirror.source_id)
        assert source is not None, f"dangling mirror {node.name!r}"
        assert source.components.mirror is None
        assert _has_ancestor(nodes, source.id, _is_flagged_visual)
        assert _has_ancestor(nodes, node.id, lambda n: n.kind is NodeKind.COLLISION)


def assert_invariants(doc, synced=False):
    """Dual consistency, acyclicity, kind rules and name uniqueness.

    With ``synced`` set the document must also have intact mirrors, which
    only holds once the synchronizer has run.
    """
    nodes = doc.scene.nodes
    roots = doc.scene.roots
    assert len(set(roots)) == len(roots)
    for node_id, node in nodes.items():
        assert node.id == node_id
        if node.parent_id is None:
            assert node_id in roots
        else:
            assert node_id not in roots
            parent = nodes[node.parent_id]
            assert parent.children.count(node_id) == 1
        assert len(set(node.children)) == len(node.children)
        for child_id in node.children:
            assert nodes[child_id].parent_id == node_id
        if node.kind is NodeKind.ROBOT:
            assert node.parent_id is None
        if node.kind is NodeKind.LINK and node.parent_id is not None:
            assert nodes[node.parent_id].kind in (NodeKind.ROBOT, NodeKind.JOINT)
    for root_id in roots:
        assert nodes[root_id].parent_id is None

    for node_id in nodes:
        seen = set()
        current = node_id
        while current is not None:
            assert current not in seen, "cycle detected"
            seen.add(current)
            current = nodes[current].parent_id

    names = [n.name for n in nodes.values() if not is_name_exempt(n)]
    assert len(names) == len(set(names)), f"duplicate names: {sorted(names)}"
    if doc.scene.selected_id is not None:
        assert doc.scene.selected_id in nodes
    if synced:
        assert_mirror_integrity(doc)


@pytest.fixture
def empty_doc():
    return create_empty_document("test")


@pytest.fixture
def two_link_robot(empty_doc):
    """robot > base > joint > tip, with a flagged visual holding a cube on base."""
    doc = empty_doc
    doc, robot = add(doc, "Robot", NodeKind.ROBOT, node_id="robot")
    doc, base = add(
        doc, "base", NodeKind.LINK, robot, Components(robot=LinkFragment(name="base")), node_id="base"
    )
    doc, joint = add(
        doc,
        "hinge",
        NodeKind.JOINT,
        base,
        Components(
            transform=Transform(position=(0.0, 0.0, 0.5)),
            robot=JointFragment(type="revolute", axis=(0.0, 0.0, 1.0)),
        ),
        node_id="hinge",
    )
    doc, tip = add(
        doc, "tip", NodeKind.LINK, joint, Components(robot=LinkFragment(name="tip")), node_id="tip"
    )
    doc, visual = add(
        doc,
        "Visual",
        NodeKind.VISUAL,
        base,
        Components(visual=VisualFlags(attach_collisions=True)),
        node_id="visual",
    )
    doc, cube = add(
        doc, "Cube", NodeKind.MESH, visual, source=PrimitiveSource(shape="cube"), node_id="cube"
    )
    return doc
