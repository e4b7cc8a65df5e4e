"""SO(3) rotation helpers in JAX.

Two Euler conventions meet in the editor:

* the editor stores node rotations as intrinsic XYZ angles in degrees,
  ``R = Rx(a) @ Ry(b) @ Rz(c)``;
* the robot-description format stores roll/pitch/yaw in radians,
  ``R = Rz(yaw) @ Ry(pitch) @ Rx(roll)``.

All functions operate on single (3,) vectors or (3, 3) matrices.
"""

from typing import Tuple

import jax
import jax.numpy as jnp

Array = jax.Array

# Threshold used to detect gimbal lock when extracting Euler angles.
_GIMBAL_EPS = 0.9999999


def rot_x(angle) -> Array:
    """Rotation about the X axis by ``angle`` radians."""
    c, s = jnp.cos(angle), jnp.sin(angle)
    return jnp.array([[1.0, 0.0, 0.0], [0.0, c, -s], [0.0, s, c]])


def rot_y(angle) -> Array:
    """Rotation about the Y axis by ``angle`` radians."""
    c, s = jnp.cos(angle), jnp.sin(angle)
    return jnp.array([[c, 0.0, s], [0.0, 1.0, 0.0], [-s, 0.0, c]])


def rot_z(angle) -> Array:
    """Rotation about the Z axis by ``angle`` radians."""
    c, s = jnp.cos(angle), jnp.sin(angle)
    return jnp.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])


def from_rpy(rpy) -> Array:
    """
    Convert roll-pitch-yaw angles to a rotation matrix.

    Args:
        rpy: (3,) array of [roll, pitch, yaw] angles in radians.

    Returns:
        (3, 3) rotation matrix ``Rz(yaw) @ Ry(pitch) @ Rx(roll)``.
    """
    roll, pitch, yaw = rpy
    return rot_z(yaw) @ rot_y(pitch) @ rot_x(roll)


def to_rpy(R: Array) -> Tuple[float, float, float]:
    """
    Extract roll-pitch-yaw angles from a rotation matrix.

    Inverse of :func:`from_rpy`. At gimbal lock (pitch = ±90°) roll is fixed
    to zero and the remaining rotation is attributed to yaw.

    Args:
        R: (3, 3) rotation matrix.

    Returns:
        Tuple of (roll, pitch, yaw) in radians.
    """
    m31 = float(jnp.clip(R[2, 0], -1.0, 1.0))
    pitch = float(jnp.arcsin(-m31))
    if abs(m31) < _GIMBAL_EPS:
        roll = float(jnp.arctan2(R[2, 1], R[2, 2]))
        yaw = float(jnp.arctan2(R[1, 0], R[0, 0]))
    else:
        roll = 0.0
        yaw = float(jnp.arctan2(-R[0, 1], R[1, 1]))
    return roll, pitch, yaw


def from_euler_xyz(angles) -> Array:
    """
    Convert intrinsic XYZ Euler angles (radians) to a rotation matrix.

    Args:
        angles: (3,) array of rotations about X, Y and Z.

    Returns:
        (3, 3) rotation matrix ``Rx(a) @ Ry(b) @ Rz(c)``.
    """
    a, b, c = angles
    return rot_x(a) @ rot_y(b) @ rot_z(c)


def to_euler_xyz(R: Array) -> Tuple[float, float, float]:
    """
    Extract intrinsic XYZ Euler angles (radians) from a rotation matrix.

    Args:
        R: (3, 3) rotation matrix.

    Returns:
        Tuple of rotations about X, Y and Z.
    """
    m13 = float(jnp.clip(R[0, 2], -1.0, 1.0))
    b = float(jnp.arcsin(m13))
    if abs(m13) < _GIMBAL_EPS:
        a = float(jnp.arctan2(-R[1, 2], R[2, 2]))
        c = float(jnp.arctan2(-R[0, 1], R[0, 0]))
    else:
        a = float(jnp.arctan2(R[2, 1], R[1, 1]))
        c = 0.0
    return a, b, c

