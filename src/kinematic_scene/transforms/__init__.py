"""
JAX-based frame math used by the export pipeline.

This module provides:
- SO(3) rotations and the two Euler conventions in play (so3 module)
- 4x4 homogeneous transforms with scale (se3 module)
- conversions between editor transforms, robot-description poses and
  matrices (frames module)
"""

from . import so3
from . import se3
from . import frames

__all__ = [
    "so3",
    "se3",
    "frames",
]
