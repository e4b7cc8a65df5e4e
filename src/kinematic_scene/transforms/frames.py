"""Conversions between editor transforms, robot poses and matrices."""

import math
from typing import Optional

import jax
import jax.numpy as jnp

from ..core.types import ONE3, Pose, Transform, Vec3
from . import se3, so3

Array = jax.Array


def _vec3(values) -> Vec3:
    return (float(values[0]), float(values[1]), float(values[2]))


def _euler_radians(transform: Transform) -> Array:
    return jnp.deg2rad(jnp.asarray(transform.rotation, dtype=float))


def transform_matrix(transform: Optional[Transform]) -> Array:
    """Full ``T @ R @ S`` matrix of an editor transform (identity for None)."""
    if transform is None:
        return se3.identity()
    R = so3.from_euler_xyz(_euler_radians(transform))
    return se3.compose(jnp.asarray(transform.position, dtype=float), R, transform.scale)


def rigid_matrix(transform: Optional[Transform]) -> Array:
    """Translation and rotation of an editor transform, scale dropped."""
    if transform is None:
        return se3.identity()
    R = so3.from_euler_xyz(_euler_radians(transform))
    return se3.from_position_and_rotation(jnp.asarray(transform.position, dtype=float), R)


def scale_matrix(transform: Optional[Transform]) -> Array:
    if transform is None:
        return se3.identity()
    return se3.from_scale(transform.scale)


def pose_matrix(pose: Optional[Pose]) -> Array:
    """Rigid matrix of a robot pose (roll/pitch/yaw in radians)."""
    if pose is None:
        return se3.identity()
    R = so3.from_rpy(jnp.asarray(pose.rpy, dtype=float))
    return se3.from_position_and_rotation(jnp.asarray(pose.xyz, dtype=float), R)


def matrix_to_pose(T: Array) -> Pose:
    """Rigid part of ``T`` as a pose; any scale in ``T`` is discarded."""
    position, R, _ = se3.decompose(T)
    return Pose(xyz=_vec3(position), rpy=so3.to_rpy(R))


def pose_to_transform(pose: Optional[Pose], scale: Vec3 = ONE3) -> Transform:
    """Editor transform carrying the same rigid motion as ``pose``."""
    if pose is None:
        return Transform(scale=scale)
    R = so3.from_rpy(jnp.asarray(pose.rpy, dtype=float))
    rotation = tuple(math.degrees(a) for a in so3.to_euler_xyz(R))
    return Transform(position=_vec3(pose.xyz), rotation=rotation, scale=scale)

