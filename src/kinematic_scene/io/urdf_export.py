"""Export a robot subtree of a document to URDF text.

Every link gets a *frame*: identity when the link hangs under a joint (the
joint origin already carries the parent-to-link transform), otherwise the
link's own rigid transform. Geometry and inertial poses are expressed as
``frame @ scale @ editor_offset @ local_origin``; scale left in the composed
matrix is baked into the geometry dimensions.

Joint origins are ``parent_frame @ parent_scale @ joint_rigid @ child_rigid``,
left-multiplied by the parent link's editor offset when it has one.
"""

import math
import re
from typing import Dict, List, Optional, Set, Tuple

import jax.numpy as jnp
import numpy as np
from flax import struct
from lxml import etree

from ..chain import (
    has_incoming_joint,
    joint_child_link_id,
    joint_fragment,
    joint_parent_link_id,
    link_fragment,
)
from ..config import CONFIG
from ..core.types import (
    PRIMITIVE_SHAPES,
    BoxGeometry,
    CloneSource,
    CylinderGeometry,
    Document,
    Geometry,
    GeometryEntry,
    Inertial,
    InertiaTensor,
    JointDynamics,
    JointLimit,
    MeshGeometry,
    Node,
    NodeKind,
    Pose,
    PrimitiveSource,
    SphereGeometry,
    Vec3,
)
from ..transforms import frames, se3, so3
from ..util.logger import log_debug, log_error, log_warn

DIM_EPS = 1e-6

_NON_IDENT = re.compile(r"[^A-Za-z0-9_]+")
# characters XML 1.0 cannot carry, control characters included
_XML_INVALID = re.compile("[^\u0009\u000A\u000D\u0020-\uD7FF\uE000-\uFFFD\U00010000-\U0010FFFF]")

# editor primitives are Y-up; URDF cylinders run along Z
_CYLINDER_ALIGN = se3.from_position_and_rotation(jnp.zeros(3), so3.rot_x(-math.pi / 2))


@struct.dataclass
class ExportResult:
    robot_id: str = struct.field(pytree_node=False)
    robot_name: str = struct.field(pytree_node=False)
    urdf: str = struct.field(pytree_node=False)
    warnings: Tuple[str, ...] = struct.field(pytree_node=False, default=())


@struct.dataclass
class _ExportJoint:
    name: str = struct.field(pytree_node=False)
    type: str = struct.field(pytree_node=False)
    parent: str = struct.field(pytree_node=False)
    child: str = struct.field(pytree_node=False)
    origin: Pose = Pose()
    axis: Vec3 = (0.0, 0.0, 1.0)
    limit: Optional[JointLimit] = None
    dynamics: Optional[JointDynamics] = None


@struct.dataclass
class _ExportLink:
    name: str = struct.field(pytree_node=False)
    inertial: Optional[Inertial] = None
    visuals: Tuple[GeometryEntry, ...] = ()
    collisions: Tuple[GeometryEntry, ...] = ()


# Names and numbers


def sanitize_name(raw: str, fallback: str) -> str:
    """Make ``raw`` a safe URDF identifier.

    Runs of characters outside ``[A-Za-z0-9_]`` become ``_``, surrounding
    underscores are trimmed and a leading digit gets an ``n_`` prefix.
    """
    base = _NON_IDENT.sub("_", raw.strip() or fallback).strip("_")
    name = base or fallback
    if name[0].isdigit():
        return f"n_{name}"
    return name


def xml_text(raw: str) -> str:
    """Drop characters that cannot appear in an XML attribute value."""
    return _XML_INVALID.sub("", raw).strip()


def claim_unique_name(raw: str, fallback: str, used: Set[str]) -> str:
    base = sanitize_name(raw, fallback)
    name = base
    suffix = 2
    while name in used:
        name = f"{base}_{suffix}"
        suffix += 1
    used.add(name)
    return name


def format_number(value: Optional[float], precision: int = 6) -> str:
    """Fixed-point text with trailing zeros trimmed; ``-0`` prints as ``0``."""
    if value is None or not math.isfinite(value):
        return "0"
    if abs(value) < 1e-12:
        value = 0.0
    text = f"{value:.{precision}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return "0" if text in ("-0", "") else text


def format_vec3(values, precision: int = 6) -> str:
    return " ".join(format_number(float(v), precision) for v in values)


def _positive(value: float, minimum: float = DIM_EPS) -> float:
    if not math.isfinite(value):
        return minimum
    return max(minimum, abs(value))


# Geometry


def scale_geometry(geometry: Geometry, scale) -> Geometry:
    """Bake a decomposed scale into primitive dimensions.

    Boxes scale per axis, spheres by the largest factor, cylinders scale
    their radius by max(x, y) and length by z; meshes carry the scale.
    """
    sx, sy, sz = (_positive(float(s)) for s in scale)
    if isinstance(geometry, BoxGeometry):
        size = geometry.size
        return BoxGeometry(size=(_positive(size[0] * sx), _positive(size[1] * sy), _positive(size[2] * sz)))
    if isinstance(geometry, SphereGeometry):
        return SphereGeometry(radius=_positive(geometry.radius * max(sx, sy, sz)))
    if isinstance(geometry, CylinderGeometry):
        return CylinderGeometry(
            radius=_positive(geometry.radius * max(sx, sy)),
            length=_positive(geometry.length * sz),
        )
    return MeshGeometry(
        file=geometry.file,
        scale=(
            _positive(geometry.scale[0] * sx),
            _positive(geometry.scale[1] * sy),
            _positive(geometry.scale[2] * sz),
        ),
    )


def geometry_volume(geometry: Geometry) -> float:
    if isinstance(geometry, BoxGeometry):
        return float(np.prod(geometry.size))
    if isinstance(geometry, SphereGeometry):
        return 4.0 / 3.0 * math.pi * geometry.radius ** 3
    if isinstance(geometry, CylinderGeometry):
        return math.pi * geometry.radius ** 2 * geometry.length
    return 0.0


def _primitive_shape(nodes, node: Node) -> Optional[str]:
    seen = set()
    current = node
    while current is not None and current.id not in seen:
        seen.add(current.id)
        source = current.source
        if isinstance(source, PrimitiveSource):
            return source.shape
        if not isinstance(source, CloneSource):
            return None
        current = nodes.get(source.from_id)
    return None


def _primitive_geometry(shape: str, scale) -> Tuple[Geometry, bool]:
    """Geometry of a unit editor primitive under ``scale``.

    Returns the geometry and whether it is a Y-up cylinder that needs
    re-aligning to the URDF Z axis.
    """
    sx, sy, sz = (_positive(float(s)) for s in scale)
    if shape == "cube":
        return BoxGeometry(size=(sx, sy, sz)), False
    if shape == "sphere":
        return SphereGeometry(radius=_positive(max(sx, sy, sz) * 0.5)), False
    return CylinderGeometry(radius=_positive(max(sx, sz) * 0.5), length=sy), True


def _relative_matrix(nodes, ancestor_id: str, node_id: str):
    chain: List[Node] = []
    current = nodes.get(node_id)
    while current is not None and current.id != ancestor_id:
        chain.append(current)
        current = nodes.get(current.parent_id) if current.parent_id is not None else None
    if current is None:
        return None
    return se3.multiply(*(frames.transform_matrix(n.components.transform) for n in reversed(chain)))


def _geometry_role(nodes, link_id: str, node: Node) -> NodeKind:
    current = nodes.get(node.parent_id) if node.parent_id is not None else None
    while current is not None and current.id != link_id:
        if current.kind in (NodeKind.VISUAL, NodeKind.COLLISION):
            return current.kind
        current = nodes.get(current.parent_id) if current.parent_id is not None else None
    return NodeKind.VISUAL


def collect_primitive_geometries(nodes, link_id: str):
    """Primitive ``mesh`` nodes below a link, as link-local geometry entries.

    The search does not enter nested links or joints. Each entry is filed as
    visual or collision after its nearest container; planes are skipped.
    """
    visuals: List[Tuple[GeometryEntry, object]] = []
    collisions: List[Tuple[GeometryEntry, object]] = []
    link = nodes.get(link_id)
    if link is None:
        return visuals, collisions

    stack = list(reversed(link.children))
    while stack:
        node = nodes.get(stack.pop())
        if node is None or node.kind in (NodeKind.LINK, NodeKind.JOINT):
            continue
        if node.kind is NodeKind.MESH:
            shape = _primitive_shape(nodes, node)
            relative = None
            if shape in PRIMITIVE_SHAPES and shape != "plane":
                relative = _relative_matrix(nodes, link_id, node.id)
            if relative is not None:
                _, _, scale = se3.decompose(relative)
                geometry, needs_align = _primitive_geometry(shape, scale)
                rigid = frames.pose_matrix(frames.matrix_to_pose(relative))
                if needs_align:
                    rigid = rigid @ _CYLINDER_ALIGN
                entry = GeometryEntry(geometry=geometry, name=node.name or None)
                # origin is kept as a matrix until the link frame is applied
                target = collisions if _geometry_role(nodes, link_id, node) is NodeKind.COLLISION else visuals
                target.append((entry, rigid))
        stack.extend(reversed(node.children))
    return visuals, collisions


def _with_scene_origins(nodes, link: Node, kind: NodeKind, entries):
    """Pair imported entries with their index-matched container nodes.

    A container's transform replaces the stored origin so edits made in the
    tree win over the imported value.
    """
    containers = [nodes[c] for c in link.children if c in nodes and nodes[c].kind is kind]
    out = []
    for index, entry in enumerate(entries):
        if index < len(containers):
            origin = frames.rigid_matrix(containers[index].components.transform)
        else:
            origin = frames.pose_matrix(entry.origin)
        out.append((entry, origin))
    return out


def _transform_entries(items, prefix) -> Tuple[GeometryEntry, ...]:
    out = []
    for entry, origin in items:
        matrix = prefix @ origin
        _, _, scale = se3.decompose(matrix)
        out.append(
            GeometryEntry(
                geometry=scale_geometry(entry.geometry, scale),
                origin=frames.matrix_to_pose(matrix),
                name=entry.name,
            )
        )
    return tuple(out)


# Inertial


def _finite_or(value, fallback: float) -> float:
    if value is None or not math.isfinite(value):
        return fallback
    return float(value)


def resolve_link_inertial(node: Node, volume: float = 0.0) -> Optional[Inertial]:
    """Inertial block from the link fragment, else synthesized from physics.

    With ``use_density`` set and a positive primitive ``volume``, the mass
    is ``density * volume``.
    """
    fragment = link_fragment(node)
    if fragment is not None and fragment.inertial is not None:
        return fragment.inertial
    physics = node.components.physics
    if physics is None:
        return None
    mass = physics.mass
    if physics.use_density and volume > 0.0:
        mass = physics.density * volume
    if mass is None or not math.isfinite(mass):
        return None

    tensor = physics.inertia_tensor
    inertia = InertiaTensor(
        ixx=_finite_or(tensor.ixx if tensor else None, physics.inertia[0]),
        iyy=_finite_or(tensor.iyy if tensor else None, physics.inertia[1]),
        izz=_finite_or(tensor.izz if tensor else None, physics.inertia[2]),
        ixy=_finite_or(tensor.ixy if tensor else None, 0.0),
        ixz=_finite_or(tensor.ixz if tensor else None, 0.0),
        iyz=_finite_or(tensor.iyz if tensor else None, 0.0),
    )
    if not all(math.isfinite(v) for v in (inertia.ixx, inertia.iyy, inertia.izz)):
        return None
    com = physics.com or (0.0, 0.0, 0.0)
    return Inertial(origin=Pose(xyz=tuple(float(c) for c in com)), mass=max(0.0, float(mass)), inertia=inertia)


# Assembly


def _editor_offset_matrix(node: Node):
    fragment = link_fragment(node)
    offset = fragment.editor_offset if fragment is not None else None
    if offset is None or offset.is_identity():
        return None
    return frames.pose_matrix(offset)


def _export_link(nodes, link: Node, name: str) -> _ExportLink:
    transform = link.components.transform
    frame = se3.identity() if has_incoming_joint(nodes, link.id) else frames.rigid_matrix(transform)
    prefix = frame @ frames.scale_matrix(transform)
    offset = _editor_offset_matrix(link)
    if offset is not None:
        prefix = prefix @ offset

    fragment = link_fragment(link)
    imported_visuals = _with_scene_origins(nodes, link, NodeKind.VISUAL, fragment.visuals) if fragment else []
    imported_collisions = (
        _with_scene_origins(nodes, link, NodeKind.COLLISION, fragment.collisions) if fragment else []
    )
    primitive_visuals, primitive_collisions = collect_primitive_geometries(nodes, link.id)

    primitive_visuals = _transform_entries(primitive_visuals, prefix)
    primitive_collisions = _transform_entries(primitive_collisions, prefix)
    visuals = _transform_entries(imported_visuals, prefix) + primitive_visuals
    collisions = _transform_entries(imported_collisions, prefix) + primitive_collisions

    volume = sum(geometry_volume(e.geometry) for e in (primitive_collisions or primitive_visuals))
    inertial = resolve_link_inertial(link, volume)
    if inertial is not None:
        inertial = inertial.replace(origin=frames.matrix_to_pose(prefix @ frames.pose_matrix(inertial.origin)))

    return _ExportLink(name=name, inertial=inertial, visuals=visuals, collisions=collisions)


def _normalized_axis(axis: Optional[Vec3]) -> Vec3:
    if axis is None:
        return (0.0, 0.0, 1.0)
    vec = np.array(
        [_finite_or(axis[0], 0.0), _finite_or(axis[1], 0.0), _finite_or(axis[2], 1.0)], dtype=float
    )
    norm = float(np.linalg.norm(vec))
    if norm ** 2 < 1e-12:
        return (0.0, 0.0, 1.0)
    return tuple(float(v) for v in vec / norm)


def _export_joint(nodes, joint: Node, link_names: Dict[str, str], used: Set[str], warnings: List[str]):
    label = joint.name or joint.id
    parent_id = joint_parent_link_id(nodes, joint.id)
    child_id = joint_child_link_id(nodes, joint.id)
    if parent_id is None or child_id is None:
        warnings.append(f'Skipped joint "{label}" because parent or child link could not be resolved.')
        return None
    if parent_id == child_id:
        warnings.append(f'Skipped joint "{label}" because it links the same link as parent and child.')
        return None
    if parent_id not in link_names or child_id not in link_names:
        warnings.append(f'Skipped joint "{label}" because mapped link names could not be resolved.')
        return None

    fragment = joint_fragment(joint)
    parent = nodes[parent_id]
    child = nodes[child_id]
    parent_transform = parent.components.transform
    parent_frame = se3.identity() if has_incoming_joint(nodes, parent_id) else frames.rigid_matrix(parent_transform)
    origin = se3.multiply(
        parent_frame,
        frames.scale_matrix(parent_transform),
        frames.rigid_matrix(joint.components.transform),
        frames.rigid_matrix(child.components.transform),
    )
    offset = _editor_offset_matrix(parent)
    if offset is not None:
        origin = offset @ origin

    name_seed = (fragment.name if fragment else "") or joint.name or joint.id
    return _ExportJoint(
        name=claim_unique_name(name_seed, "joint", used),
        type=fragment.type if fragment else "fixed",
        parent=link_names[parent_id],
        child=link_names[child_id],
        origin=frames.matrix_to_pose(origin),
        axis=_normalized_axis(fragment.axis if fragment else None),
        limit=fragment.limit if fragment else None,
        dynamics=fragment.dynamics if fragment else None,
    )


# Serialization


def _append_origin(parent, pose: Pose, precision: int) -> None:
    etree.SubElement(
        parent, "origin", xyz=format_vec3(pose.xyz, precision), rpy=format_vec3(pose.rpy, precision)
    )


def _append_geometry(parent, geometry: Geometry, precision: int) -> None:
    geometry_elem = etree.SubElement(parent, "geometry")
    if isinstance(geometry, BoxGeometry):
        etree.SubElement(geometry_elem, "box", size=format_vec3(geometry.size, precision))
    elif isinstance(geometry, SphereGeometry):
        etree.SubElement(geometry_elem, "sphere", radius=format_number(geometry.radius, precision))
    elif isinstance(geometry, CylinderGeometry):
        etree.SubElement(
            geometry_elem,
            "cylinder",
            radius=format_number(geometry.radius, precision),
            length=format_number(geometry.length, precision),
        )
    else:
        etree.SubElement(
            geometry_elem,
            "mesh",
            filename=xml_text(geometry.file),
            scale=format_vec3(geometry.scale, precision),
        )


def _append_entry(parent, tag: str, entry: GeometryEntry, precision: int) -> None:
    elem = etree.SubElement(parent, tag)
    name = xml_text(entry.name or "")
    if name:
        elem.set("name", name)
    _append_origin(elem, entry.origin, precision)
    _append_geometry(elem, entry.geometry, precision)


def _optional_attrs(block, keys, precision: int) -> Dict[str, str]:
    attrs = {}
    for key in keys:
        value = getattr(block, key)
        if value is not None and math.isfinite(value):
            attrs[key] = format_number(value, precision)
    return attrs


def serialize_urdf(robot_name: str, links, joints, precision: int = 6) -> str:
    root = etree.Element("robot", name=robot_name)
    for link in links:
        link_elem = etree.SubElement(root, "link", name=link.name)
        if link.inertial is not None:
            inertial = link.inertial
            inertial_elem = etree.SubElement(link_elem, "inertial")
            _append_origin(inertial_elem, inertial.origin, precision)
            etree.SubElement(inertial_elem, "mass", value=format_number(inertial.mass, precision))
            tensor = inertial.inertia
            etree.SubElement(
                inertial_elem,
                "inertia",
                ixx=format_number(tensor.ixx, precision),
                ixy=format_number(tensor.ixy, precision),
                ixz=format_number(tensor.ixz, precision),
                iyy=format_number(tensor.iyy, precision),
                iyz=format_number(tensor.iyz, precision),
                izz=format_number(tensor.izz, precision),
            )
        for entry in link.visuals:
            _append_entry(link_elem, "visual", entry, precision)
        for entry in link.collisions:
            _append_entry(link_elem, "collision", entry, precision)

    for joint in joints:
        joint_elem = etree.SubElement(root, "joint", name=joint.name, type=joint.type)
        _append_origin(joint_elem, joint.origin, precision)
        etree.SubElement(joint_elem, "parent", link=joint.parent)
        etree.SubElement(joint_elem, "child", link=joint.child)
        if joint.type not in ("fixed", "floating"):
            etree.SubElement(joint_elem, "axis", xyz=format_vec3(joint.axis, precision))
        if joint.limit is not None:
            attrs = _optional_attrs(joint.limit, ("lower", "upper", "effort", "velocity"), precision)
            if attrs:
                etree.SubElement(joint_elem, "limit", **attrs)
        if joint.dynamics is not None:
            attrs = _optional_attrs(joint.dynamics, ("damping", "friction", "armature"), precision)
            if attrs:
                etree.SubElement(joint_elem, "dynamics", **attrs)

    return etree.tostring(root, pretty_print=True, xml_declaration=True, encoding="UTF-8").decode("utf-8")


def _descendants(nodes, root_id: str) -> List[Node]:
    out: List[Node] = []
    visited = set()
    stack = list(reversed(nodes[root_id].children))
    while stack:
        node_id = stack.pop()
        if node_id in visited or node_id not in nodes:
            continue
        visited.add(node_id)
        node = nodes[node_id]
        out.append(node)
        stack.extend(reversed(node.children))
    return out


def export_robot_to_urdf(doc: Document, robot_id: str, precision: Optional[int] = None) -> ExportResult:
    """Export the robot rooted at ``robot_id``.

    Joints whose links cannot be resolved are skipped and reported in
    ``warnings``.

    Raises:
        ValueError: ``robot_id`` is not a robot node, or the robot has no links.
    """
    if precision is None:
        precision = CONFIG.number_precision
    nodes = doc.scene.nodes
    robot = nodes.get(robot_id)
    if robot is None or robot.kind is not NodeKind.ROBOT:
        log_error("The selected node is not a robot.")

    descendants = _descendants(nodes, robot_id)
    link_nodes = [n for n in descendants if n.kind is NodeKind.LINK]
    joint_nodes = [n for n in descendants if n.kind is NodeKind.JOINT]
    if not link_nodes:
        log_error("The selected robot has no links to export.")

    used_links: Set[str] = set()
    link_names: Dict[str, str] = {}
    for link in link_nodes:
        fragment = link_fragment(link)
        preferred = (fragment.name if fragment else "") or link.name or link.id
        link_names[link.id] = claim_unique_name(preferred, "link", used_links)

    links = [_export_link(nodes, link, link_names[link.id]) for link in link_nodes]

    warnings: List[str] = []
    used_joints: Set[str] = set()
    joints = []
    for joint in joint_nodes:
        exported = _export_joint(nodes, joint, link_names, used_joints, warnings)
        if exported is not None:
            joints.append(exported)
    for warning in warnings:
        log_warn(warning)

    robot_name = sanitize_name(robot.name or CONFIG.default_robot_name, CONFIG.default_robot_name)
    urdf = serialize_urdf(robot_name, links, joints, precision)
    log_debug(f"Exported {robot_name}: {len(links)} links, {len(joints)} joints")
    return ExportResult(robot_id=robot_id, robot_name=robot_name, urdf=urdf, warnings=tuple(warnings))
