"""Turn a parsed URDF robot into document nodes.

The generated tree follows the editor's layout::

    robot
    └── root link
        ├── Visual / Collision containers (one per URDF entry)
        └── joint
            └── child link
                └── ...

Containers carry their entry's origin as their transform, joint nodes carry
the joint origin, and links under joints sit at identity, so exporting the
result reproduces the imported poses.
"""

from collections import deque
from typing import Dict, List, Optional, Tuple

from ..core import ops
from ..core.factory import new_node_id
from ..core.types import Components, Document, NodeInput, NodeKind, Transform
from ..transforms import frames
from ..util.logger import log_info, log_warn
from .urdf_parser import UrdfRobot, parse_urdf_string


def _link_inputs(robot: UrdfRobot, link_name: str, parent_id: str) -> Tuple[str, List[NodeInput]]:
    fragment = robot.links[link_name]
    link_id = new_node_id()
    inputs = [
        NodeInput(
            id=link_id,
            name=link_name,
            kind=NodeKind.LINK,
            parent_id=parent_id,
            components=Components(transform=Transform.identity(), robot=fragment),
        )
    ]
    for kind, entries in ((NodeKind.VISUAL, fragment.visuals), (NodeKind.COLLISION, fragment.collisions)):
        for entry in entries:
            inputs.append(
                NodeInput(
                    name=kind.value.capitalize(),
                    kind=kind,
                    parent_id=link_id,
                    components=Components(transform=frames.pose_to_transform(entry.origin)),
                )
            )
    return link_id, inputs


def robot_to_node_inputs(robot: UrdfRobot, robot_name: Optional[str] = None) -> List[NodeInput]:
    """Node requests for ``robot``, ready for :func:`ops.add_nodes`.

    The first input is the robot node. Links are placed breadth-first from
    every link that is not a joint child; joints whose parent link is not
    reachable that way are left out.
    """
    robot_id = new_node_id()
    inputs = [NodeInput(id=robot_id, name=robot_name or robot.name, kind=NodeKind.ROBOT)]

    child_links = {joint.child for joint in robot.joints}
    roots = [name for name in robot.links if name not in child_links]

    placed: Dict[str, str] = {}
    queue = deque()
    for name in roots:
        link_id, link_inputs = _link_inputs(robot, name, robot_id)
        placed[name] = link_id
        inputs.extend(link_inputs)
        queue.append(name)

    while queue:
        parent_name = queue.popleft()
        for joint in robot.joints:
            if joint.parent != parent_name or joint.child in placed or joint.child not in robot.links:
                continue
            joint_id = new_node_id()
            inputs.append(
                NodeInput(
                    id=joint_id,
                    name=joint.name,
                    kind=NodeKind.JOINT,
                    parent_id=placed[parent_name],
                    components=Components(transform=frames.pose_to_transform(joint.origin), robot=joint),
                )
            )
            link_id, link_inputs = _link_inputs(robot, joint.child, joint_id)
            placed[joint.child] = link_id
            inputs.extend(link_inputs)
            queue.append(joint.child)
    return inputs


def unplaced_joints(robot: UrdfRobot, inputs: List[NodeInput]) -> List[str]:
    placed = {i.components.robot.name for i in inputs if i.kind is NodeKind.JOINT}
    return [joint.name for joint in robot.joints if joint.name not in placed]


def import_urdf(doc: Document, text: str, robot_name: Optional[str] = None) -> Tuple[Document, List[str]]:
    """Parse ``text`` and add the robot to ``doc``, selecting the new robot.

    Returns:
        The updated document (unchanged when parsing failed) and warnings.
    """
    result = parse_urdf_string(text)
    warnings = list(result.warnings)
    if result.robot is None:
        return doc, warnings

    inputs = robot_to_node_inputs(result.robot, robot_name)
    for name in unplaced_joints(result.robot, inputs):
        message = f'Joint "{name}" was not imported because its links are not connected to a root link.'
        log_warn(message)
        warnings.append(message)
    log_info(f'Imported robot "{inputs[0].name}" with {len(result.robot.links)} links.')
    return ops.add_nodes(doc, inputs, select_id=inputs[0].id), warnings
