"""Tests for structural document operations."""

import pytest

from kinematic_scene.core import ops
from kinematic_scene.core.types import (
    CloneSource,
    Components,
    JointFragment,
    LinkFragment,
    Mirror,
    NodeInput,
    NodeKind,
    Physics,
    PhysicsFields,
    Transform,
    VisualFlags,
)

from conftest import add, assert_invariants


# Adding nodes


def test_second_link_is_renamed(empty_doc):
    doc, robot = add(empty_doc, "Robot", NodeKind.ROBOT)
    doc, first = add(doc, "Link", NodeKind.LINK, robot)
    doc, second = add(doc, "Link", NodeKind.LINK, robot)
    assert doc.scene.nodes[first].name == "Link"
    assert doc.scene.nodes[second].name == "Link_1"
    assert doc.scene.nodes[robot].children == (first, second)
    assert doc.scene.selected_id == second
    assert_invariants(doc)


def test_add_generates_id_and_selects(empty_doc):
    doc = ops.add_node(empty_doc, NodeInput(name="Group", kind=NodeKind.GROUP))
    (node_id,) = doc.scene.roots
    assert doc.scene.selected_id == node_id
    assert doc.scene.nodes[node_id].components == Components()


def test_add_existing_id_is_noop(empty_doc):
    doc, node_id = add(empty_doc, "A", NodeKind.GROUP)
    again = ops.add_node(doc, NodeInput(id=node_id, name="B", kind=NodeKind.GROUP))
    assert again is doc


def test_robot_never_gets_parent(empty_doc):
    doc, group = add(empty_doc, "G", NodeKind.GROUP)
    doc, robot = add(doc, "Robot", NodeKind.ROBOT, group)
    assert doc.scene.nodes[robot].parent_id is None
    assert robot in doc.scene.roots
    assert doc.scene.nodes[group].children == ()


def test_link_under_disallowed_kind_goes_to_roots(empty_doc):
    doc, group = add(empty_doc, "G", NodeKind.GROUP)
    doc, link = add(doc, "L", NodeKind.LINK, group)
    assert doc.scene.nodes[link].parent_id is None
    assert doc.scene.roots == (group, link)
    assert_invariants(doc)


def test_unknown_parent_goes_to_roots(empty_doc):
    doc, node = add(empty_doc, "G", NodeKind.GROUP, "missing")
    assert doc.scene.nodes[node].parent_id is None
    assert node in doc.scene.roots


def test_add_nodes_wires_batch_members(empty_doc):
    inputs = [
        NodeInput(id="link", name="L", kind=NodeKind.LINK, parent_id="robot"),
        NodeInput(id="robot", name="R", kind=NodeKind.ROBOT),
        NodeInput(id="joint", name="J", kind=NodeKind.JOINT, parent_id="link",
                  components=Components(robot=JointFragment(name="ignored"))),
    ]
    doc = ops.add_nodes(empty_doc, inputs, select_id="robot")
    assert doc.scene.nodes["link"].parent_id == "robot"
    assert doc.scene.nodes["joint"].parent_id == "link"
    assert doc.scene.nodes["joint"].components.robot.name == "J"
    assert doc.scene.selected_id == "robot"
    assert_invariants(doc)


def test_add_nodes_breaks_cycles_inside_batch(empty_doc):
    inputs = [
        NodeInput(id="a", name="A", kind=NodeKind.GROUP, parent_id="b"),
        NodeInput(id="b", name="B", kind=NodeKind.GROUP, parent_id="a"),
    ]
    doc = ops.add_nodes(empty_doc, inputs)
    assert_invariants(doc)
    assert doc.scene.roots == ("a",)
    assert doc.scene.nodes["b"].parent_id == "a"


def test_add_nodes_keep_selection(empty_doc):
    doc, first = add(empty_doc, "A", NodeKind.GROUP)
    doc = ops.add_nodes(doc, [NodeInput(name="B", kind=NodeKind.GROUP)], keep_selection=True)
    assert doc.scene.selected_id == first


def test_add_nodes_empty_is_noop(empty_doc):
    assert ops.add_nodes(empty_doc, []) is empty_doc


def test_containers_keep_canonical_names(empty_doc):
    doc, link = add(empty_doc, "L", NodeKind.LINK)
    doc, v1 = add(doc, "Foo", NodeKind.VISUAL, link)
    doc, v2 = add(doc, "Foo", NodeKind.VISUAL, link)
    assert doc.scene.nodes[v1].name == "Visual"
    assert doc.scene.nodes[v2].name == "Visual"


def test_mirror_inputs_keep_their_name(empty_doc):
    doc, mesh = add(empty_doc, "Cube", NodeKind.MESH)
    doc = ops.add_node(
        doc,
        NodeInput(id="shadow", name="Cube", kind=NodeKind.MESH,
                  components=Components(mirror=Mirror(source_id=mesh))),
    )
    assert doc.scene.nodes["shadow"].name == "Cube"
    assert_invariants(doc)


# Renaming


def test_rename_resolves_collisions(empty_doc):
    doc, a = add(empty_doc, "A", NodeKind.GROUP)
    doc, b = add(doc, "B", NodeKind.GROUP)
    doc = ops.set_node_name(doc, b, "A")
    assert doc.scene.nodes[b].name == "A_1"


def test_rename_to_own_name_is_noop(empty_doc):
    doc, a = add(empty_doc, "A", NodeKind.GROUP)
    assert ops.set_node_name(doc, a, "A") is doc


@pytest.mark.parametrize(
    "kind, expected",
    [(NodeKind.ROBOT, "Robot"), (NodeKind.LINK, "Link"), (NodeKind.JOINT, "Joint"),
     (NodeKind.MESH, "Mesh"), (NodeKind.GROUP, "Thing")],
)
def test_blank_rename_falls_back(empty_doc, kind, expected):
    doc, node = add(empty_doc, "Thing", kind)
    doc = ops.set_node_name(doc, node, "   ")
    assert doc.scene.nodes[node].name == expected


def test_rename_container_keeps_canonical(empty_doc):
    doc, visual = add(empty_doc, "Visual", NodeKind.VISUAL)
    assert ops.set_node_name(doc, visual, "Shiny") is doc


def test_rename_unknown_is_noop(empty_doc):
    assert ops.set_node_name(empty_doc, "missing", "X") is empty_doc


def test_link_rename_relabels_joints(two_link_robot):
    doc = ops.set_node_name(two_link_robot, "tip", "finger")
    assert doc.scene.nodes["tip"].components.robot.name == "finger"
    # the fixture's joint was created before the labels were synchronized
    doc = ops.set_node_robot_fragment(
        doc, "hinge", doc.scene.nodes["hinge"].components.robot.replace(parent="base", child="finger")
    )
    doc = ops.set_node_name(doc, "tip", "claw")
    fragment = doc.scene.nodes["hinge"].components.robot
    assert fragment.child == "claw"
    assert fragment.parent == "base"


def test_joint_rename_updates_fragment(two_link_robot):
    doc = ops.set_node_name(two_link_robot, "hinge", "elbow")
    assert doc.scene.nodes["hinge"].components.robot.name == "elbow"


# Components and selection


def test_set_transform_and_noop_on_same_value(empty_doc):
    doc, node = add(empty_doc, "A", NodeKind.GROUP)
    transform = Transform(position=(1.0, 0.0, 0.0))
    doc = ops.set_node_transform(doc, node, transform)
    assert doc.scene.nodes[node].transform == transform
    assert ops.set_node_transform(doc, node, transform) is doc
    assert ops.set_node_transform(doc, "missing", transform) is doc


def test_set_physics_keeps_fields_when_omitted(empty_doc):
    doc, node = add(empty_doc, "A", NodeKind.LINK)
    fields = PhysicsFields(mass=True)
    doc = ops.set_node_physics(doc, node, Physics(mass=2.0), fields)
    doc = ops.set_node_physics(doc, node, Physics(mass=3.0))
    components = doc.scene.nodes[node].components
    assert components.physics.mass == 3.0
    assert components.physics_fields == fields


def test_set_visual_and_fragment(empty_doc):
    doc, node = add(empty_doc, "V", NodeKind.VISUAL)
    doc = ops.set_node_visual(doc, node, VisualFlags(attach_collisions=True))
    assert doc.scene.nodes[node].components.visual.attach_collisions
    doc, link = add(doc, "L", NodeKind.LINK)
    doc = ops.set_node_robot_fragment(doc, link, LinkFragment(name="L"))
    assert doc.scene.nodes[link].components.robot == LinkFragment(name="L")


def test_selection(empty_doc):
    doc, a = add(empty_doc, "A", NodeKind.GROUP)
    doc = ops.set_selection(doc, None)
    assert doc.scene.selected_id is None
    assert ops.set_selection(doc, None) is doc
    assert ops.set_selection(doc, "missing") is doc
    assert ops.set_selection(doc, a).scene.selected_id == a


def test_accepted_changes_touch_metadata(empty_doc):
    doc, _ = add(empty_doc, "A", NodeKind.GROUP)
    assert doc.metadata.updated_at >= empty_doc.metadata.updated_at
    assert doc.metadata.created_at == empty_doc.metadata.created_at


# Reparenting


def test_reparent_moves_both_sides(empty_doc):
    doc, a = add(empty_doc, "A", NodeKind.GROUP)
    doc, b = add(doc, "B", NodeKind.GROUP)
    doc, c = add(doc, "C", NodeKind.GROUP, a)
    doc = ops.set_node_parent(doc, c, b)
    assert doc.scene.nodes[a].children == ()
    assert doc.scene.nodes[b].children == (c,)
    assert doc.scene.nodes[c].parent_id == b
    doc = ops.set_node_parent(doc, c, None)
    assert doc.scene.roots == (a, b, c)
    assert_invariants(doc)


def test_reparent_refusals(empty_doc):
    doc, robot = add(empty_doc, "R", NodeKind.ROBOT)
    doc, a = add(doc, "A", NodeKind.GROUP)
    doc, b = add(doc, "B", NodeKind.GROUP, a)
    assert ops.set_node_parent(doc, a, a) is doc
    assert ops.set_node_parent(doc, a, b) is doc
    assert ops.set_node_parent(doc, robot, a) is doc
    assert ops.set_node_parent(doc, b, a) is doc
    assert ops.set_node_parent(doc, "missing", a) is doc


def test_reparent_link_under_group_falls_back_to_roots(empty_doc):
    doc, robot = add(empty_doc, "R", NodeKind.ROBOT)
    doc, group = add(doc, "G", NodeKind.GROUP)
    doc, link = add(doc, "L", NodeKind.LINK, robot)
    doc = ops.set_node_parent(doc, link, group)
    assert doc.scene.nodes[link].parent_id is None
    assert link in doc.scene.roots
    assert doc.scene.nodes[robot].children == ()
    assert_invariants(doc)


def test_reparent_unknown_target_means_roots(empty_doc):
    doc, a = add(empty_doc, "A", NodeKind.GROUP)
    doc, b = add(doc, "B", NodeKind.GROUP, a)
    doc = ops.set_node_parent(doc, b, "nowhere")
    assert doc.scene.nodes[b].parent_id is None


def test_validate_reparent_target(empty_doc):
    doc, robot = add(empty_doc, "R", NodeKind.ROBOT)
    doc, group = add(doc, "G", NodeKind.GROUP)
    doc, link = add(doc, "L", NodeKind.LINK, robot)
    doc, child = add(doc, "C", NodeKind.GROUP, group)
    assert ops.validate_reparent_target(doc, link, robot) is None
    assert ops.validate_reparent_target(doc, link, None) is None
    assert "Links" in ops.validate_reparent_target(doc, link, group)
    assert "Robots" in ops.validate_reparent_target(doc, robot, group)
    assert "descendants" in ops.validate_reparent_target(doc, group, child)
    assert "itself" in ops.validate_reparent_target(doc, group, group)
    assert "not found" in ops.validate_reparent_target(doc, "missing", None)


# Subtrees


def test_collect_subtree_is_preorder(two_link_robot):
    payload = ops.collect_subtree(two_link_robot, "base")
    assert [n.id for n in payload.nodes] == ["base", "hinge", "tip", "visual", "cube"]
    assert ops.collect_subtree(two_link_robot, "missing") is None


def test_clone_subtree(two_link_robot):
    doc = ops.clone_subtree(two_link_robot, "base", offset=(0.4, 0.0, 0.2))
    assert_invariants(doc)
    robot = doc.scene.nodes["robot"]
    assert robot.children[0] == "base"
    new_root = doc.scene.nodes[robot.children[1]]
    assert new_root.name == "base_1"
    assert new_root.components.robot.name == "base_1"
    assert new_root.source == CloneSource(from_id="base")
    assert new_root.transform.position == pytest.approx((0.4, 0.0, 0.2))
    assert doc.scene.selected_id == new_root.id

    copy = ops.collect_subtree(doc, new_root.id)
    original_ids = {n.id for n in ops.collect_subtree(two_link_robot, "base").nodes}
    assert original_ids.isdisjoint({n.id for n in copy.nodes})
    names = [n.name for n in copy.nodes]
    assert names == ["base_1", "hinge_1", "tip_1", "Visual", "Cube_1"]
    # only the root is offset
    hinge_copy = copy.nodes[1]
    assert hinge_copy.transform == two_link_robot.scene.nodes["hinge"].transform


def test_clone_isolation(two_link_robot):
    doc = ops.clone_subtree(two_link_robot, "tip")
    copy_id = doc.scene.selected_id
    edited = ops.set_node_transform(doc, copy_id, Transform(position=(5.0, 0.0, 0.0)))
    edited = ops.set_node_name(edited, copy_id, "other")
    assert edited.scene.nodes["tip"] == two_link_robot.scene.nodes["tip"]


def test_paste_link_retargets_to_nearest_joint_or_robot(two_link_robot):
    payload = ops.collect_subtree(two_link_robot, "tip")
    doc = ops.paste_subtree(two_link_robot, payload, name_suffix=" Paste", parent_id="cube")
    new_id = doc.scene.selected_id
    # cube > visual > base > robot: the robot is the nearest allowed parent
    assert doc.scene.nodes[new_id].parent_id == "robot"
    assert doc.scene.nodes[new_id].name == "tip_1"
    assert_invariants(doc)


def test_paste_robot_is_parentless(two_link_robot):
    payload = ops.collect_subtree(two_link_robot, "robot")
    doc = ops.paste_subtree(two_link_robot, payload, parent_id="base")
    new_id = doc.scene.selected_id
    assert doc.scene.nodes[new_id].parent_id is None
    assert doc.scene.roots == ("robot", new_id)
    assert_invariants(doc)


def test_paste_after_removal_uses_roots(two_link_robot):
    payload = ops.collect_subtree(two_link_robot, "visual")
    doc = ops.remove_subtree(two_link_robot, "visual")
    doc = ops.paste_subtree(doc, payload)
    new_id = doc.scene.selected_id
    # original parent still exists, so the copy returns there
    assert doc.scene.nodes[new_id].parent_id == "base"


def test_paste_remaps_internal_mirrors_only(empty_doc):
    doc, group = add(empty_doc, "G", NodeKind.GROUP)
    doc, mesh = add(doc, "M", NodeKind.MESH, group)
    doc = ops.add_node(doc, NodeInput(id="inner", name="M", kind=NodeKind.MESH, parent_id=group,
                                      components=Components(mirror=Mirror(source_id=mesh))))
    doc = ops.add_node(doc, NodeInput(id="outer", name="X", kind=NodeKind.MESH, parent_id=group,
                                      components=Components(mirror=Mirror(source_id="elsewhere"))))
    payload = ops.collect_subtree(doc, group)
    doc = ops.paste_subtree(doc, payload)
    copy = ops.collect_subtree(doc, doc.scene.selected_id)
    by_source = {n.source.from_id: n for n in copy.nodes}
    assert by_source["inner"].components.mirror.source_id == by_source[mesh].id
    assert by_source["outer"].components.mirror.source_id == "elsewhere"
    assert_invariants(doc)


def test_paste_invalid_payload_is_noop(two_link_robot):
    payload = ops.collect_subtree(two_link_robot, "tip").replace(root_id="nope")
    assert ops.paste_subtree(two_link_robot, payload) is two_link_robot


def test_remove_subtree(two_link_robot):
    doc = ops.set_selection(two_link_robot, "tip")
    doc = ops.remove_subtree(doc, "hinge")
    assert "hinge" not in doc.scene.nodes
    assert "tip" not in doc.scene.nodes
    assert "hinge" not in doc.scene.nodes["base"].children
    assert doc.scene.selected_id is None
    assert_invariants(doc)
    assert ops.remove_subtree(doc, "hinge") is doc


def test_remove_root(empty_doc):
    doc, a = add(empty_doc, "A", NodeKind.GROUP)
    doc, b = add(doc, "B", NodeKind.GROUP)
    doc = ops.remove_subtree(doc, a)
    assert doc.scene.roots == (b,)
    assert doc.scene.selected_id == b


def test_set_child_order(empty_doc):
    doc, a = add(empty_doc, "A", NodeKind.GROUP)
    doc, b = add(doc, "B", NodeKind.GROUP, a)
    doc, c = add(doc, "C", NodeKind.GROUP, a)
    doc = ops.set_child_order(doc, a, (c, b))
    assert doc.scene.nodes[a].children == (c, b)
    assert ops.set_child_order(doc, a, (c,)) is doc


def test_replace_scene(two_link_robot, empty_doc):
    doc = ops.replace_scene(two_link_robot, empty_doc.scene)
    assert doc.scene.nodes == {}
    assert doc.metadata.name == two_link_robot.metadata.name
