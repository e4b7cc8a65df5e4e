"""Tests for kinematic chain queries."""

from kinematic_scene.chain import (
    ancestor_of_kind,
    has_incoming_joint,
    joint_child_link_id,
    joint_child_link_ids,
    joint_fragment,
    joint_parent_link_id,
    link_fragment,
    nearest_ancestor_of_kinds,
    resolve_link_label,
)
from kinematic_scene.core.types import Components, LinkFragment, Node, NodeKind

from conftest import add


def test_link_label_prefers_fragment_name():
    node = Node(id="l", name="Display", kind=NodeKind.LINK,
                components=Components(robot=LinkFragment(name="urdf_name")))
    assert resolve_link_label(node) == "urdf_name"
    assert resolve_link_label(node.replace(components=Components())) == "Display"
    assert resolve_link_label(node.replace(name="", components=Components())) == "l"


def test_parent_link_skips_wrappers(two_link_robot):
    doc, group = add(two_link_robot, "Holder", NodeKind.GROUP, "visual")
    doc, joint = add(doc, "wrist", NodeKind.JOINT, group)
    nodes = doc.scene.nodes
    assert joint_parent_link_id(nodes, joint) == "base"
    assert joint_parent_link_id(nodes, "hinge") == "base"
    assert joint_parent_link_id(nodes, "base") is None
    assert joint_parent_link_id(nodes, "missing") is None


def test_child_link_found_through_wrappers(empty_doc):
    doc, robot = add(empty_doc, "R", NodeKind.ROBOT)
    doc, joint = add(doc, "J", NodeKind.JOINT)
    doc, group = add(doc, "G", NodeKind.GROUP, joint)
    doc, inner_joint = add(doc, "J2", NodeKind.JOINT, group)
    doc, hidden = add(doc, "hidden", NodeKind.LINK, inner_joint)
    doc, link = add(doc, "L", NodeKind.LINK, joint)
    nodes = doc.scene.nodes
    # the first branch only holds a link owned by the nested joint
    assert joint_child_link_ids(nodes, joint) == [link]
    assert joint_child_link_id(nodes, joint) == link
    assert joint_child_link_id(nodes, inner_joint) == hidden


def test_child_links_one_per_branch(empty_doc):
    doc, joint = add(empty_doc, "J", NodeKind.JOINT)
    doc, first = add(doc, "A", NodeKind.LINK, joint)
    doc, second = add(doc, "B", NodeKind.LINK, joint)
    assert joint_child_link_ids(doc.scene.nodes, joint) == [first, second]
    assert joint_child_link_ids(doc.scene.nodes, first) == []


def test_ancestor_walks_are_inclusive(two_link_robot):
    nodes = two_link_robot.scene.nodes
    kinds = frozenset({NodeKind.LINK})
    assert nearest_ancestor_of_kinds(nodes, "base", kinds).id == "base"
    assert nearest_ancestor_of_kinds(nodes, "cube", kinds).id == "base"
    assert nearest_ancestor_of_kinds(nodes, "robot", kinds) is None
    assert nearest_ancestor_of_kinds(nodes, None, kinds) is None
    assert ancestor_of_kind(nodes, "tip", NodeKind.JOINT) == "hinge"


def test_incoming_joint(two_link_robot):
    nodes = two_link_robot.scene.nodes
    assert has_incoming_joint(nodes, "tip")
    assert not has_incoming_joint(nodes, "base")
    assert not has_incoming_joint(nodes, "missing")


def test_fragment_accessors(two_link_robot):
    nodes = two_link_robot.scene.nodes
    assert joint_fragment(nodes["hinge"]).type == "revolute"
    assert joint_fragment(nodes["base"]) is None
    assert link_fragment(nodes["base"]).name == "base"
    assert link_fragment(nodes["hinge"]) is None
