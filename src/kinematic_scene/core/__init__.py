"""Scene document model for the kinematic editor.

This module provides the immutable document types, naming rules and the
pure structural operations that every edit goes through.
"""

from . import types
from . import naming
from . import factory
from .types import (
    ClonePayload,
    Components,
    Document,
    JointFragment,
    LinkFragment,
    Node,
    NodeInput,
    NodeKind,
    Pose,
    Scene,
    Transform,
)
from .factory import create_empty_document, create_empty_scene, new_node_id
from . import ops

__all__ = [
    "types",
    "naming",
    "factory",
    "ops",
    "ClonePayload",
    "Components",
    "Document",
    "JointFragment",
    "LinkFragment",
    "Node",
    "NodeInput",
    "NodeKind",
    "Pose",
    "Scene",
    "Transform",
    "create_empty_document",
    "create_empty_scene",
    "new_node_id",
]
