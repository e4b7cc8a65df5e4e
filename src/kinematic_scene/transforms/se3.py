"""Homogeneous 4x4 transform helpers in JAX.

Export composes several frames per entity (node transform, link scale,
editor offset, local origin). Matrices here may carry non-uniform scale;
:func:`decompose` splits them back into translation, rotation and scale the
same way a scene graph does.
"""

from typing import Tuple

import jax
import jax.numpy as jnp

Array = jax.Array


def identity() -> Array:
    """(4, 4) identity transform."""
    return jnp.eye(4)


def from_position_and_rotation(p, R) -> Array:
    """
    Construct SE(3) transform from position and rotation.

    Args:
        p: (3,) position vector
        R: (3, 3) rotation matrix

    Returns:
        (4, 4) homogeneous transformation matrix
    """
    T = jnp.eye(4)
    T = T.at[:3, :3].set(jnp.asarray(R))
    T = T.at[:3, 3].set(jnp.asarray(p))
    return T


def from_scale(scale) -> Array:
    """(4, 4) pure scale matrix."""
    return jnp.diag(jnp.array([scale[0], scale[1], scale[2], 1.0]))


def compose(p, R, scale) -> Array:
    """
    Build ``T @ R @ S`` from translation, rotation and per-axis scale.

    Args:
        p: (3,) translation
        R: (3, 3) rotation matrix
        scale: (3,) per-axis scale

    Returns:
        (4, 4) matrix
    """
    return from_position_and_rotation(p, R) @ from_scale(scale)


def decompose(T: Array) -> Tuple[Array, Array, Array]:
    """
    Split a matrix built by :func:`compose` into (position, rotation, scale).

    Scale is taken from the column norms; a negative determinant flips the
    sign of the X scale so the remaining rotation stays proper.

    Args:
        T: (4, 4) matrix

    Returns:
        Tuple of (3,) position, (3, 3) rotation, (3,) scale.
    """
    M = T[:3, :3]
    sx = jnp.linalg.norm(M[:, 0])
    sy = jnp.linalg.norm(M[:, 1])
    sz = jnp.linalg.norm(M[:, 2])
    sx = jnp.where(jnp.linalg.det(M) < 0, -sx, sx)
    scale = jnp.array([sx, sy, sz])
    safe = jnp.where(jnp.abs(scale) < 1e-12, 1.0, scale)
    R = M / safe[None, :]
    return T[:3, 3], R, scale


def multiply(*Ts: Array) -> Array:
    """
    Chain-multiply transformation matrices left to right.

    Returns:
        (4, 4) result of ``Ts[0] @ Ts[1] @ ...``
    """
    out = identity()
    for T in Ts:
        out = jnp.matmul(out, T)
    return out

