"""Immutable value types for the scene document.

Every type here is a ``flax.struct`` dataclass: frozen, compared by value,
updated with ``.replace(**changes)`` and registered as a JAX PyTree. Fields
that describe tree identity or structure are static (``pytree_node=False``);
numeric payloads are PyTree leaves.

A :class:`Document` is never mutated after it is created. Operations in
:mod:`kinematic_scene.core.ops` build new containers and return a new
document, sharing every untouched node with the previous one.
"""

import enum
from typing import Mapping, Optional, Tuple, Union

from flax import struct

Vec3 = Tuple[float, float, float]

ZERO3: Vec3 = (0.0, 0.0, 0.0)
ONE3: Vec3 = (1.0, 1.0, 1.0)


class NodeKind(str, enum.Enum):
    """Closed set of node roles in the tree."""

    ROBOT = "robot"
    LINK = "link"
    JOINT = "joint"
    VISUAL = "visual"
    COLLISION = "collision"
    MESH = "mesh"
    GROUP = "group"
    LIGHT = "light"
    CAMERA = "camera"
    OTHER = "other"


# Transforms and poses


@struct.dataclass
class Transform:
    """Editor-local transform.

    Attributes:
        position: Translation relative to the parent node.
        rotation: Intrinsic XYZ Euler angles in degrees.
        scale: Per-axis scale.
    """

    position: Vec3 = ZERO3
    rotation: Vec3 = ZERO3
    scale: Vec3 = ONE3

    @classmethod
    def identity(cls) -> "Transform":
        return cls()


@struct.dataclass
class Pose:
    """Robot-description pose: translation plus roll/pitch/yaw in radians."""

    xyz: Vec3 = ZERO3
    rpy: Vec3 = ZERO3

    def is_identity(self, eps: float = 1e-9) -> bool:
        return all(abs(v) < eps for v in self.xyz + self.rpy)


# Physics


@struct.dataclass
class InertiaTensor:
    ixx: float = 0.0
    iyy: float = 0.0
    izz: float = 0.0
    ixy: float = 0.0
    ixz: float = 0.0
    iyz: float = 0.0


@struct.dataclass
class Physics:
    """Per-node rigid body properties edited in the inspector."""

    mass: float = 1.0
    density: float = 100.0
    inertia: Vec3 = ONE3
    inertia_tensor: Optional[InertiaTensor] = None
    com: Optional[Vec3] = None
    friction: float = 0.8
    restitution: float = 0.0
    collisions_enabled: bool = struct.field(pytree_node=False, default=True)
    fixed: bool = struct.field(pytree_node=False, default=False)
    use_density: bool = struct.field(pytree_node=False, default=False)


DEFAULT_PHYSICS = Physics(
    inertia_tensor=InertiaTensor(ixx=1.0, iyy=1.0, izz=1.0),
    com=ZERO3,
)


@struct.dataclass
class PhysicsFields:
    """Mask of physics fields that were explicitly authored."""

    mass: bool = False
    density: bool = False
    inertia: bool = False
    inertia_tensor: bool = False
    com: bool = False
    friction: bool = False
    restitution: bool = False
    collisions_enabled: bool = False
    fixed: bool = False
    use_density: bool = False


# Robot-description geometry


@struct.dataclass
class BoxGeometry:
    size: Vec3 = ONE3


@struct.dataclass
class SphereGeometry:
    radius: float = 0.5


@struct.dataclass
class CylinderGeometry:
    radius: float = 0.5
    length: float = 1.0


@struct.dataclass
class MeshGeometry:
    file: str = struct.field(pytree_node=False, default="")
    scale: Vec3 = ONE3


Geometry = Union[BoxGeometry, SphereGeometry, CylinderGeometry, MeshGeometry]


@struct.dataclass
class GeometryEntry:
    """One ``<visual>`` or ``<collision>`` element of a link."""

    geometry: Geometry
    origin: Pose = Pose()
    name: Optional[str] = struct.field(pytree_node=False, default=None)


@struct.dataclass
class Inertial:
    origin: Pose = Pose()
    mass: float = 0.0
    inertia: InertiaTensor = InertiaTensor()


# Robot fragments


@struct.dataclass
class LinkFragment:
    """Link-shaped robot-description metadata attached to a ``link`` node.

    ``editor_offset`` is not part of the text format: it records a pose
    correction that keeps the link's geometry in place after its logical
    frame moved, and is folded into exported poses.
    """

    name: str = struct.field(pytree_node=False, default="")
    inertial: Optional[Inertial] = None
    visuals: Tuple[GeometryEntry, ...] = ()
    collisions: Tuple[GeometryEntry, ...] = ()
    editor_offset: Optional[Pose] = None


@struct.dataclass
class JointLimit:
    lower: Optional[float] = None
    upper: Optional[float] = None
    effort: Optional[float] = None
    velocity: Optional[float] = None


@struct.dataclass
class JointDynamics:
    damping: Optional[float] = None
    friction: Optional[float] = None
    armature: Optional[float] = None


@struct.dataclass
class JointActuator:
    enabled: Optional[bool] = None
    stiffness: Optional[float] = None
    damping: Optional[float] = None
    initial_position: Optional[float] = None
    type: Optional[str] = struct.field(pytree_node=False, default=None)


@struct.dataclass
class JointFragment:
    """Joint-shaped robot-description metadata attached to a ``joint`` node.

    ``parent`` and ``child`` are link labels (see
    :func:`kinematic_scene.chain.resolve_link_label`), kept in step with the
    tree by the synchronizer.
    """

    name: str = struct.field(pytree_node=False, default="")
    type: str = struct.field(pytree_node=False, default="fixed")
    parent: str = struct.field(pytree_node=False, default="")
    child: str = struct.field(pytree_node=False, default="")
    origin: Pose = Pose()
    axis: Vec3 = (1.0, 0.0, 0.0)
    limit: Optional[JointLimit] = None
    dynamics: Optional[JointDynamics] = None
    actuator: Optional[JointActuator] = None


RobotFragment = Union[LinkFragment, JointFragment]


# Node components and provenance


@struct.dataclass
class VisualFlags:
    attach_collisions: bool = struct.field(pytree_node=False, default=False)


@struct.dataclass
class Mirror:
    """Marks a generated shadow node; ``source_id`` is the visual-side original."""

    source_id: str = struct.field(pytree_node=False)


@struct.dataclass
class Components:
    transform: Optional[Transform] = None
    physics: Optional[Physics] = None
    physics_fields: Optional[PhysicsFields] = None
    robot: Optional[RobotFragment] = None
    visual: Optional[VisualFlags] = None
    mirror: Optional[Mirror] = struct.field(pytree_node=False, default=None)
    provenance: Optional[Mapping[str, str]] = None


EMPTY_COMPONENTS = Components()


@struct.dataclass
class PrimitiveSource:
    shape: str = struct.field(pytree_node=False, default="cube")


@struct.dataclass
class CloneSource:
    from_id: str = struct.field(pytree_node=False)


NodeSource = Union[PrimitiveSource, CloneSource]

PRIMITIVE_SHAPES = ("cube", "sphere", "cylinder", "plane")


# Tree


@struct.dataclass
class Node:
    """One element of the scene tree.

    Attributes:
        id: Opaque, document-unique identifier.
        name: Display name, unique across the document except for
              ``visual``/``collision`` containers.
        kind: Role of the node.
        parent_id: Parent node id, ``None`` for roots.
        children: Ordered child ids.
        components: Optional component bag.
        source: Provenance (primitive shape or clone origin).
    """

    id: str = struct.field(pytree_node=False)
    name: str = struct.field(pytree_node=False)
    kind: NodeKind = struct.field(pytree_node=False)
    parent_id: Optional[str] = struct.field(pytree_node=False, default=None)
    children: Tuple[str, ...] = struct.field(pytree_node=False, default=())
    components: Components = EMPTY_COMPONENTS
    source: Optional[NodeSource] = struct.field(pytree_node=False, default=None)

    @property
    def transform(self) -> Transform:
        return self.components.transform or Transform.identity()


@struct.dataclass
class Scene:
    nodes: Mapping[str, Node]
    roots: Tuple[str, ...] = struct.field(pytree_node=False, default=())
    selected_id: Optional[str] = struct.field(pytree_node=False, default=None)


@struct.dataclass
class Metadata:
    name: Optional[str] = struct.field(pytree_node=False, default=None)
    created_at: Optional[str] = struct.field(pytree_node=False, default=None)
    updated_at: Optional[str] = struct.field(pytree_node=False, default=None)


@struct.dataclass
class Document:
    scene: Scene
    sources: Mapping[str, str] = struct.field(default_factory=dict)
    metadata: Metadata = struct.field(pytree_node=False, default=Metadata())
    version: int = struct.field(pytree_node=False, default=1)

    @property
    def nodes(self) -> Mapping[str, Node]:
        return self.scene.nodes


# Operation inputs


@struct.dataclass
class NodeInput:
    """Request to create a node; ``id`` is generated when omitted."""

    name: str = struct.field(pytree_node=False)
    kind: NodeKind = struct.field(pytree_node=False)
    id: Optional[str] = struct.field(pytree_node=False, default=None)
    parent_id: Optional[str] = struct.field(pytree_node=False, default=None)
    components: Optional[Components] = None
    source: Optional[NodeSource] = struct.field(pytree_node=False, default=None)


@struct.dataclass
class ClonePayload:
    """Pre-order snapshot of a subtree, used for duplicate and paste."""

    root_id: str = struct.field(pytree_node=False)
    nodes: Tuple[Node, ...] = ()
