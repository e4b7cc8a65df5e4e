"""Factories for the commands the editor executes.

Each factory closes over its arguments and returns a :class:`Command` whose
``apply`` is one of the pure operations in :mod:`kinematic_scene.core.ops`.
"""

from typing import Optional, Sequence

from .core import ops
from .core.types import (
    DEFAULT_PHYSICS,
    ClonePayload,
    Document,
    JointFragment,
    LinkFragment,
    NodeInput,
    Physics,
    PhysicsFields,
    RobotFragment,
    Transform,
    Vec3,
    VisualFlags,
)
from .history import Command
from .transforms import frames


def set_selection_command(node_id: Optional[str]) -> Command:
    return Command(
        id="scene.select", label="Select", apply=lambda doc: ops.set_selection(doc, node_id)
    )


def set_node_name_command(node_id: str, name: str) -> Command:
    return Command(
        id="scene.rename", label="Rename", apply=lambda doc: ops.set_node_name(doc, node_id, name)
    )


def set_node_transform_command(node_id: str, transform: Transform) -> Command:
    return Command(
        id="scene.transform",
        label="Transform",
        apply=lambda doc: ops.set_node_transform(doc, node_id, transform),
    )


def set_node_physics_command(
    node_id: str, physics: Physics, fields: Optional[PhysicsFields] = None
) -> Command:
    return Command(
        id="scene.physics",
        label="Physics",
        apply=lambda doc: ops.set_node_physics(doc, node_id, physics, fields),
    )


def _apply_robot_fragment(doc: Document, node_id: str, fragment: RobotFragment) -> Document:
    doc = ops.set_node_robot_fragment(doc, node_id, fragment)
    node = doc.scene.nodes.get(node_id)
    if node is None:
        return doc

    if isinstance(fragment, JointFragment):
        # the joint node sits at its origin; authored scale is preserved
        transform = frames.pose_to_transform(fragment.origin, scale=node.transform.scale)
        doc = ops.set_node_transform(doc, node_id, transform)

    elif isinstance(fragment, LinkFragment) and fragment.inertial is not None:
        inertial = fragment.inertial
        physics = (node.components.physics or DEFAULT_PHYSICS).replace(
            mass=inertial.mass,
            inertia=(inertial.inertia.ixx, inertial.inertia.iyy, inertial.inertia.izz),
        )
        fields = (node.components.physics_fields or PhysicsFields()).replace(
            mass=True, inertia=True
        )
        doc = ops.set_node_physics(doc, node_id, physics, fields)

    return doc


def set_node_robot_fragment_command(node_id: str, fragment: RobotFragment) -> Command:
    """Attach link/joint metadata and mirror it onto the node.

    A joint fragment also moves the node to the fragment's origin. A link
    fragment with an inertial block also sets mass and principal inertia and
    marks both as explicitly authored.
    """
    return Command(
        id="scene.robot",
        label="Robot Description",
        apply=lambda doc: _apply_robot_fragment(doc, node_id, fragment),
    )


def set_node_visual_command(node_id: str, visual: VisualFlags) -> Command:
    return Command(
        id="scene.visual",
        label="Visual",
        apply=lambda doc: ops.set_node_visual(doc, node_id, visual),
    )


def remove_subtree_command(root_id: str) -> Command:
    return Command(
        id="scene.remove", label="Remove", apply=lambda doc: ops.remove_subtree(doc, root_id)
    )


def add_node_command(node_input: NodeInput) -> Command:
    return Command(
        id="scene.add", label="Add Node", apply=lambda doc: ops.add_node(doc, node_input)
    )


def add_nodes_command(inputs: Sequence[NodeInput], select_id: Optional[str] = None) -> Command:
    inputs = tuple(inputs)
    return Command(
        id="scene.addNodes",
        label="Add Nodes",
        apply=lambda doc: ops.add_nodes(doc, inputs, select_id=select_id),
    )


def set_node_parent_command(
    node_id: str, parent_id: Optional[str], transform: Optional[Transform] = None
) -> Command:
    """Reparent a node, then optionally give it a new local transform.

    Callers that want the node to keep its world pose compute the
    compensating transform themselves and pass it here.
    """

    def apply(doc: Document) -> Document:
        doc = ops.set_node_parent(doc, node_id, parent_id)
        if transform is not None:
            doc = ops.set_node_transform(doc, node_id, transform)
        return doc

    return Command(id="scene.reparent", label="Reparent", apply=apply)


def duplicate_subtree_command(root_id: str, offset: Optional[Vec3] = None) -> Command:
    return Command(
        id="scene.duplicate",
        label="Duplicate",
        apply=lambda doc: ops.clone_subtree(doc, root_id, offset=offset),
    )


def paste_subtree_command(
    payload: ClonePayload,
    offset: Optional[Vec3] = None,
    parent_id=ops.UNSET,
    insert_after_id: Optional[str] = None,
) -> Command:
    return Command(
        id="scene.paste",
        label="Paste",
        apply=lambda doc: ops.paste_subtree(
            doc,
            payload,
            offset=offset,
            name_suffix=" Paste",
            parent_id=parent_id,
            insert_after_id=insert_after_id,
        ),
    )
