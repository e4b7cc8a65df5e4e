"""Kinematic chain queries over the scene tree.

The physical tree nests wrapper nodes (visual, collision, group, mesh)
between a link and the joints attached to it, so "parent link of a joint"
and "child link of a joint" are not direct tree edges. The functions here
recover those relationships with bounded searches. They are pure and never
modify the nodes they read.
"""

from typing import AbstractSet, List, Mapping, Optional

from .core.types import JointFragment, LinkFragment, Node, NodeKind

Nodes = Mapping[str, Node]


def resolve_link_label(node: Node) -> str:
    """Label used to reference a link from joint fragments.

    The link fragment's name when present, otherwise the display name.
    """
    fragment = node.components.robot
    if isinstance(fragment, LinkFragment):
        return fragment.name or node.name or node.id
    return node.name or node.id


def nearest_ancestor_of_kinds(
    nodes: Nodes, start_id: Optional[str], kinds: AbstractSet[NodeKind]
) -> Optional[Node]:
    """Walk ``parent_id`` upward from ``start_id`` (inclusive).

    Returns:
        The first node whose kind is in ``kinds``, or None when the walk
        reaches a root or an unknown id first.
    """
    current = start_id
    while current is not None:
        node = nodes.get(current)
        if node is None:
            return None
        if node.kind in kinds:
            return node
        current = node.parent_id
    return None


def ancestor_of_kind(nodes: Nodes, start_id: Optional[str], kind: NodeKind) -> Optional[str]:
    node = nearest_ancestor_of_kinds(nodes, start_id, frozenset({kind}))
    return node.id if node is not None else None


def joint_parent_link_id(nodes: Nodes, joint_id: str) -> Optional[str]:
    """Physically nearest link above a joint, skipping wrapper nodes."""
    joint = nodes.get(joint_id)
    if joint is None or joint.kind is not NodeKind.JOINT:
        return None
    return ancestor_of_kind(nodes, joint.parent_id, NodeKind.LINK)


def _first_link_in_branch(nodes: Nodes, start_id: str) -> Optional[str]:
    visited = set()
    stack = [start_id]
    while stack:
        node_id = stack.pop()
        if node_id in visited:
            continue
        visited.add(node_id)
        node = nodes.get(node_id)
        if node is None:
            continue
        if node.kind is NodeKind.LINK:
            return node_id
        if node.kind is NodeKind.JOINT:
            # a nested joint owns everything below it
            continue
        stack.extend(reversed(node.children))
    return None


def joint_child_link_ids(nodes: Nodes, joint_id: str) -> List[str]:
    """Links driven by a joint.

    Each direct child branch of the joint is searched depth-first, stopping
    at the first link found and never crossing into a nested joint. At most
    one link is collected per branch; results are de-duplicated and keep the
    order of the joint's children.
    """
    joint = nodes.get(joint_id)
    if joint is None or joint.kind is not NodeKind.JOINT:
        return []
    out: List[str] = []
    for child_id in joint.children:
        link_id = _first_link_in_branch(nodes, child_id)
        if link_id is not None and link_id not in out:
            out.append(link_id)
    return out


def joint_child_link_id(nodes: Nodes, joint_id: str) -> Optional[str]:
    links = joint_child_link_ids(nodes, joint_id)
    return links[0] if links else None


def has_incoming_joint(nodes: Nodes, link_id: str) -> bool:
    """True when the link hangs directly under a joint node."""
    link = nodes.get(link_id)
    if link is None or link.parent_id is None:
        return False
    parent = nodes.get(link.parent_id)
    return parent is not None and parent.kind is NodeKind.JOINT


def joint_fragment(node: Node) -> Optional[JointFragment]:
    fragment = node.components.robot
    return fragment if isinstance(fragment, JointFragment) else None


def link_fragment(node: Node) -> Optional[LinkFragment]:
    fragment = node.components.robot
    return fragment if isinstance(fragment, LinkFragment) else None
