"""
Kinematic Scene: the document core of a robot-assembly editor.

This library keeps an immutable scene tree of robots, links, joints and
their geometry, applies edits as undoable commands, mirrors visual geometry
into collision geometry, and round-trips robot assemblies through URDF.
"""

import jax
jax.config.update("jax_enable_x64", True)

# Import core modules
from . import core
from . import transforms
from . import chain
from . import sync
from . import history
from . import commands
from . import events
from . import io
from .config import CONFIG, EditorConfig
from .engine import DocumentEngine

__version__ = "0.1.0"
__all__ = [
    "core",
    "transforms",
    "chain",
    "sync",
    "history",
    "commands",
    "events",
    "io",
    "CONFIG",
    "EditorConfig",
    "DocumentEngine",
]
