"""Quaternion / 4x4 matrix helpers.

Quaternions are xyzw (glTF convention) throughout the package.
"""

import numpy as np

IDENTITY_QUAT = (0.0, 0.0, 0.0, 1.0)


def _normalize(v: np.ndarray) -> np.ndarray:
    """Normalize vectors along last axis, handling zero-length."""
    norms = np.sqrt((v ** 2).sum(axis=-1, keepdims=True))
    norms = np.maximum(norms, 1e-10)
    return v / norms


def quat_from_axis_angle(axis, angle: float) -> np.ndarray:
    """Unit quaternion (xyzw) rotating ``angle`` radians around ``axis``."""
    axis = _normalize(np.asarray(axis, dtype=np.float64))
    half = angle / 2.0
    return np.array([*(axis * np.sin(half)), np.cos(half)], dtype=np.float64)


def qmul(q: np.ndarray, r: np.ndarray) -> np.ndarray:
    """Multiply quaternions q * r.  Shape (..., 4), xyzw convention."""
    x0, y0, z0, w0 = q[..., 0], q[..., 1], q[..., 2], q[..., 3]
    x1, y1, z1, w1 = r[..., 0], r[..., 1], r[..., 2], r[..., 3]
    return np.stack([
        w0*x1 + x0*w1 + y0*z1 - z0*y1,
        w0*y1 - x0*z1 + y0*w1 + z0*x1,
        w0*z1 + x0*y1 - y0*x1 + z0*w1,
        w0*w1 - x0*x1 - y0*y1 - z0*z1,
    ], axis=-1)


def trs_to_mat4(t, r_xyzw, s=(1.0, 1.0, 1.0)) -> np.ndarray:
    """Build a 4x4 matrix from translation, rotation (xyzw), scale."""
    x, y, z, w = r_xyzw
    m = np.eye(4, dtype=np.float64)
    # Rotation from quaternion
    m[0, 0] = (1 - 2 * (y * y + z * z)) * s[0]
    m[0, 1] = (2 * (x * y - z * w)) * s[1]
    m[0, 2] = (2 * (x * z + y * w)) * s[2]
    m[1, 0] = (2 * (x * y + z * w)) * s[0]
    m[1, 1] = (1 - 2 * (x * x + z * z)) * s[1]
    m[1, 2] = (2 * (y * z - x * w)) * s[2]
    m[2, 0] = (2 * (x * z - y * w)) * s[0]
    m[2, 1] = (2 * (y * z + x * w)) * s[1]
    m[2, 2] = (1 - 2 * (x * x + y * y)) * s[2]
    m[0, 3] = t[0]
    m[1, 3] = t[1]
    m[2, 3] = t[2]
    return m


def transform_points(matrix: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Apply a 4x4 matrix to (N, 3) points."""
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    return points @ matrix[:3, :3].T + matrix[:3, 3]
