"""Pose and calibration sample data structures."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from ..math3d.rotation import rotation_angle, rotation_axis

# Relative rotations smaller than this give an unreliable axis estimate.
MIN_DELTA_ANGLE_RAD = 0.4
MIN_AXIS_NORM = 0.01


@dataclass(frozen=True, slots=True)
class Pose:
    """Device pose in its tracking system's absolute frame.

    rot:
      3x3 orthonormal rotation matrix.
    trans:
      Translation [x, y, z], meters.
    """

    rot: np.ndarray
    trans: np.ndarray

    def __post_init__(self):
        rot = np.array(self.rot, dtype=np.float64).reshape(3, 3)
        trans = np.array(self.trans, dtype=np.float64).reshape(3)
        rot.setflags(write=False)
        trans.setflags(write=False)
        object.__setattr__(self, "rot", rot)
        object.__setattr__(self, "trans", trans)

    @classmethod
    def from_device_transform(cls, m34) -> "Pose":
        m = np.asarray(m34, dtype=np.float64).reshape(3, 4)
        return cls(rot=m[:, :3], trans=m[:, 3])

    @classmethod
    def from_coordinates(cls, x: float, y: float, z: float) -> "Pose":
        return cls(
            rot=np.eye(3, dtype=np.float64),
            trans=np.array([x, y, z], dtype=np.float64),
        )


@dataclass(frozen=True, slots=True)
class Sample:
    """Simultaneous reference/target observation. valid=False means discard."""

    ref: Pose | None = None
    target: Pose | None = None
    valid: bool = False

    @classmethod
    def of(cls, ref: Pose, target: Pose) -> "Sample":
        return cls(ref=ref, target=target, valid=True)


@dataclass(frozen=True, slots=True)
class DeltaSample:
    ref: np.ndarray = field(default_factory=lambda: np.zeros(3, dtype=np.float64))
    target: np.ndarray = field(default_factory=lambda: np.zeros(3, dtype=np.float64))
    valid: bool = False


def _unit(v: np.ndarray) -> np.ndarray:
    n = float(np.linalg.norm(v))
    if n == 0.0:
        return v
    return v / n


def delta_rotation_samples(
    s1: Sample,
    s2: Sample,
    min_angle: float = MIN_DELTA_ANGLE_RAD,
    min_axis_norm: float = MIN_AXIS_NORM,
) -> DeltaSample:
    """Rotation axes of the relative rotation between two samples.

    Rigidly attached devices rotate as a pair, so the two axes must be the
    same physical direction expressed in each device's tracking frame.
    """
    dref = s1.ref.rot @ s2.ref.rot.T
    dtarget = s1.target.rot @ s2.target.rot.T

    ref_axis = rotation_axis(dref)
    target_axis = rotation_axis(dtarget)

    # Reject pairs whose orientations were too close to each other.
    valid = (
        rotation_angle(dref) > min_angle
        and rotation_angle(dtarget) > min_angle
        and float(np.linalg.norm(ref_axis)) > min_axis_norm
        and float(np.linalg.norm(target_axis)) > min_axis_norm
    )
    return DeltaSample(ref=_unit(ref_axis), target=_unit(target_axis), valid=valid)
