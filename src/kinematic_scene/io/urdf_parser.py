"""URDF parser producing link and joint fragments.

The parser is lenient: malformed numbers fall back to defaults, elements it
does not understand are skipped, and text that is not XML at all yields a
``ParseResult`` with ``robot=None`` and a warning instead of an exception.
"""

import math
from typing import Dict, List, Optional, Tuple

from flax import struct
from lxml import etree

from ..core.types import (
    BoxGeometry,
    CylinderGeometry,
    Geometry,
    GeometryEntry,
    Inertial,
    InertiaTensor,
    JointDynamics,
    JointFragment,
    JointLimit,
    LinkFragment,
    MeshGeometry,
    Pose,
    SphereGeometry,
    Vec3,
)
from ..util.logger import log_warn

DEFAULT_ROBOT_NAME = "urdf_robot"


@struct.dataclass
class UrdfRobot:
    """Parsed robot: links keyed by name (document order) and ordered joints."""

    name: str = struct.field(pytree_node=False)
    links: Dict[str, LinkFragment] = struct.field(default_factory=dict)
    joints: Tuple[JointFragment, ...] = ()


@struct.dataclass
class ParseResult:
    robot: Optional[UrdfRobot] = None
    warnings: Tuple[str, ...] = struct.field(pytree_node=False, default=())


def _parse_number(value: Optional[str], fallback: Optional[float]) -> Optional[float]:
    if value is None:
        return fallback
    try:
        number = float(value)
    except ValueError:
        return fallback
    return number if math.isfinite(number) else fallback


def _parse_vector(value: Optional[str], fallback: Vec3) -> Vec3:
    if not value:
        return fallback
    parts = value.split()
    return tuple(
        _parse_number(parts[i], fallback[i]) if i < len(parts) else fallback[i] for i in range(3)
    )


def _read_pose(element) -> Pose:
    if element is None:
        return Pose()
    return Pose(
        xyz=_parse_vector(element.get("xyz"), (0.0, 0.0, 0.0)),
        rpy=_parse_vector(element.get("rpy"), (0.0, 0.0, 0.0)),
    )


def _read_inertial(link_elem) -> Optional[Inertial]:
    inertial = link_elem.find("inertial")
    if inertial is None:
        return None
    mass_elem = inertial.find("mass")
    mass = _parse_number(mass_elem.get("value") if mass_elem is not None else None, 0.0)
    inertia_elem = inertial.find("inertia")

    def component(key: str) -> float:
        raw = inertia_elem.get(key) if inertia_elem is not None else None
        return _parse_number(raw, 0.0)

    return Inertial(
        origin=_read_pose(inertial.find("origin")),
        mass=mass,
        inertia=InertiaTensor(
            ixx=component("ixx"),
            iyy=component("iyy"),
            izz=component("izz"),
            ixy=component("ixy"),
            ixz=component("ixz"),
            iyz=component("iyz"),
        ),
    )


def _read_geometry(geometry_elem) -> Optional[Geometry]:
    if geometry_elem is None:
        return None
    box = geometry_elem.find("box")
    if box is not None:
        return BoxGeometry(size=_parse_vector(box.get("size"), (1.0, 1.0, 1.0)))
    sphere = geometry_elem.find("sphere")
    if sphere is not None:
        return SphereGeometry(radius=_parse_number(sphere.get("radius"), 0.5))
    cylinder = geometry_elem.find("cylinder")
    if cylinder is not None:
        return CylinderGeometry(
            radius=_parse_number(cylinder.get("radius"), 0.5),
            length=_parse_number(cylinder.get("length"), 1.0),
        )
    mesh = geometry_elem.find("mesh")
    if mesh is not None:
        return MeshGeometry(
            file=mesh.get("filename", ""),
            scale=_parse_vector(mesh.get("scale"), (1.0, 1.0, 1.0)),
        )
    return None


def _read_entries(link_elem, tag: str) -> Tuple[GeometryEntry, ...]:
    entries = []
    for elem in link_elem.findall(tag):
        geometry = _read_geometry(elem.find("geometry"))
        if geometry is None:
            continue
        entries.append(
            GeometryEntry(geometry=geometry, origin=_read_pose(elem.find("origin")), name=elem.get("name"))
        )
    return tuple(entries)


def _read_optional_block(elem, cls, keys):
    """Build ``cls`` from numeric attributes; None unless at least one is present."""
    if elem is None or not any(elem.get(key) for key in keys):
        return None
    return cls(**{key: _parse_number(elem.get(key), None) for key in keys})


def _read_joint(joint_elem) -> Optional[JointFragment]:
    name = joint_elem.get("name")
    joint_type = joint_elem.get("type")
    parent_elem = joint_elem.find("parent")
    child_elem = joint_elem.find("child")
    parent = parent_elem.get("link") if parent_elem is not None else None
    child = child_elem.get("link") if child_elem is not None else None
    if not name or not joint_type or not parent or not child:
        return None

    axis_elem = joint_elem.find("axis")
    axis = _parse_vector(axis_elem.get("xyz") if axis_elem is not None else None, (1.0, 0.0, 0.0))
    return JointFragment(
        name=name,
        type=joint_type,
        parent=parent,
        child=child,
        origin=_read_pose(joint_elem.find("origin")),
        axis=axis,
        limit=_read_optional_block(
            joint_elem.find("limit"), JointLimit, ("lower", "upper", "effort", "velocity")
        ),
        dynamics=_read_optional_block(
            joint_elem.find("dynamics"), JointDynamics, ("damping", "friction", "armature")
        ),
    )


def parse_urdf_element(robot_elem) -> ParseResult:
    """Read links and joints from a ``<robot>`` element.

    Args:
        robot_elem: lxml element for ``<robot>``, or None.

    Returns:
        ParseResult: the parsed robot, or None with a warning when no
        ``<robot>`` element was given.
    """
    if robot_elem is None:
        return ParseResult(robot=None, warnings=("No <robot> root found in URDF.",))

    links: Dict[str, LinkFragment] = {}
    for link_elem in robot_elem.findall(".//link"):
        name = link_elem.get("name")
        if not name:
            continue
        links[name] = LinkFragment(
            name=name,
            inertial=_read_inertial(link_elem),
            visuals=_read_entries(link_elem, "visual"),
            collisions=_read_entries(link_elem, "collision"),
        )

    joints: List[JointFragment] = []
    for joint_elem in robot_elem.findall(".//joint"):
        joint = _read_joint(joint_elem)
        if joint is not None:
            joints.append(joint)

    robot = UrdfRobot(
        name=robot_elem.get("name") or DEFAULT_ROBOT_NAME, links=links, joints=tuple(joints)
    )
    return ParseResult(robot=robot, warnings=())


def parse_urdf_string(text: str) -> ParseResult:
    """Parse URDF text.

    Returns:
        ParseResult: ``robot`` is None and ``warnings`` explains why when the
        text is not well-formed XML or has no ``<robot>`` element.
    """
    try:
        root = etree.fromstring(text.encode("utf-8"))
    except etree.XMLSyntaxError as exc:
        log_warn(f"Failed to parse URDF XML: {exc}")
        return ParseResult(robot=None, warnings=("Failed to parse URDF XML.",))
    robot_elem = root if root.tag == "robot" else root.find(".//robot")
    return parse_urdf_element(robot_elem)


def load_urdf(urdf_path: str) -> ParseResult:
    """Load a URDF file from disk.

    Args:
        urdf_path: Path to the URDF file to load.

    Returns:
        ParseResult: see :func:`parse_urdf_string`.
    """
    with open(urdf_path, "r", encoding="utf-8") as handle:
        return parse_urdf_string(handle.read())
