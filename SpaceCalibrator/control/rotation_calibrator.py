"""Rotation offset estimation by aligning per-pair rotation axes (Kabsch)."""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from ..math3d.rotation import rotmat_to_euler_zyx_deg
from .message_sink import MessageSink
from .pose import MIN_AXIS_NORM, MIN_DELTA_ANGLE_RAD, DeltaSample, Sample, delta_rotation_samples

logger = logging.getLogger(__name__)


class CalibrationError(RuntimeError):
    """A calibration phase could not produce a usable result."""


def collect_delta_samples(
    samples: Sequence[Sample],
    min_angle: float = MIN_DELTA_ANGLE_RAD,
    min_axis_norm: float = MIN_AXIS_NORM,
) -> list[DeltaSample]:
    deltas = []
    for i in range(len(samples)):
        for j in range(i):
            delta = delta_rotation_samples(samples[i], samples[j], min_angle, min_axis_norm)
            if delta.valid:
                deltas.append(delta)
    return deltas


def fit_axis_rotation(ref_axes: np.ndarray, target_axes: np.ndarray) -> np.ndarray:
    """Rotation R with R @ target_axis ~= ref_axis, from (n, 3) axis rows."""
    ref_points = np.asarray(ref_axes, dtype=np.float64).reshape(-1, 3)
    target_points = np.asarray(target_axes, dtype=np.float64).reshape(-1, 3)
    if ref_points.shape[0] == 0:
        raise CalibrationError("no delta samples to fit rotation from")

    ref_points = ref_points - ref_points.mean(axis=0)
    target_points = target_points - target_points.mean(axis=0)

    cross_cv = ref_points.T @ target_points
    U, _, Vt = np.linalg.svd(cross_cv)
    V = Vt.T

    d = np.eye(3, dtype=np.float64)
    if np.linalg.det(U @ V.T) < 0.0:
        d[2, 2] = -1.0

    # Solves ref -> target; the offset applied to the target is the inverse.
    rot = V @ d @ U.T
    return rot.T


def calibrate_rotation(
    samples: Sequence[Sample],
    messages: MessageSink,
    min_angle: float = MIN_DELTA_ANGLE_RAD,
    min_axis_norm: float = MIN_AXIS_NORM,
) -> np.ndarray:
    """Return the rotation offset as ZYX Euler angles [z, y, x] in degrees."""
    deltas = collect_delta_samples(samples, min_angle, min_axis_norm)
    messages.message(f"Got {len(samples)} samples with {len(deltas)} delta samples\n")
    if not deltas:
        raise CalibrationError(
            "Not enough rotation between samples, rotate the devices further during calibration"
        )

    rot = fit_axis_rotation(
        np.array([d.ref for d in deltas], dtype=np.float64),
        np.array([d.target for d in deltas], dtype=np.float64),
    )
    euler = rotmat_to_euler_zyx_deg(rot)
    logger.debug("[CAL] fitted rotation matrix:\n%s", rot)

    messages.message(
        "Calibrated rotation: yaw=%.2f pitch=%.2f roll=%.2f\n" % (euler[1], euler[2], euler[0])
    )
    return euler
