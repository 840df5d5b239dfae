"""Rotation matrix helpers: axis/angle extraction, ZYX Euler angles, units."""

from __future__ import annotations

import math

import numpy as np

CM_PER_M = 100.0
M_PER_CM = 0.01


def rotation_axis(R: np.ndarray) -> np.ndarray:
    """Skew-symmetric part of R, i.e. the rotation axis scaled by 2*sin(angle)."""
    R = np.asarray(R, dtype=np.float64)
    return np.array(
        [R[2, 1] - R[1, 2], R[0, 2] - R[2, 0], R[1, 0] - R[0, 1]],
        dtype=np.float64,
    )


def rotation_angle(R: np.ndarray) -> float:
    """Rotation angle in radians, range [0, pi]."""
    R = np.asarray(R, dtype=np.float64)
    c = (float(np.trace(R)) - 1.0) / 2.0
    return math.acos(max(-1.0, min(1.0, c)))


def rotmat_to_euler_zyx_deg(R: np.ndarray) -> np.ndarray:
    """
    Decompose R = Rz(e0) * Ry(e1) * Rx(e2) and return [e0, e1, e2] in degrees.

    e1 is kept in [-90, 90]. At gimbal lock (|e1| = 90) e2 is pinned to 0
    and the remaining rotation goes into e0.
    """
    R = np.asarray(R, dtype=np.float64)
    if R.shape != (3, 3):
        raise ValueError(f"Expected 3x3 rotation matrix, got {R.shape}")

    sy = -float(R[2, 0])
    sy = max(-1.0, min(1.0, sy))
    y = math.asin(sy)
    if abs(sy) < 1.0 - 1e-9:
        z = math.atan2(R[1, 0], R[0, 0])
        x = math.atan2(R[2, 1], R[2, 2])
    else:
        z = math.atan2(-R[0, 1], R[1, 1])
        x = 0.0
    return np.degrees(np.array([z, y, x], dtype=np.float64))


def cm_to_m(v: np.ndarray) -> np.ndarray:
    return np.asarray(v, dtype=np.float64).reshape(3) * M_PER_CM


def m_to_cm(v: np.ndarray) -> np.ndarray:
    return np.asarray(v, dtype=np.float64).reshape(3) * CM_PER_M
