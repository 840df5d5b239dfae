import numpy as np
import pytest

from SpaceCalibrator.control.message_sink import MessageSink
from SpaceCalibrator.control.pose import Pose, Sample
from SpaceCalibrator.control.rotation_calibrator import (
    CalibrationError,
    calibrate_rotation,
    collect_delta_samples,
)
from SpaceCalibrator.math3d.quaternion import axis_angle_to_q, euler_zyx_deg_to_q, q_to_rotmat


def _random_rotation(rng: np.random.Generator) -> np.ndarray:
    return q_to_rotmat(axis_angle_to_q(rng.normal(size=3), rng.uniform(0.0, np.pi)))


def _samples_with_offset(offset_euler, n: int = 20, seed: int = 7) -> list[Sample]:
    """Reference/target rigidly attached, target frame rotated by the offset."""
    rng = np.random.default_rng(seed)
    offset = q_to_rotmat(euler_zyx_deg_to_q(np.asarray(offset_euler, dtype=np.float64)))
    mount = _random_rotation(rng)
    samples = []
    for _ in range(n):
        ref_rot = _random_rotation(rng)
        samples.append(
            Sample.of(
                Pose(rot=ref_rot, trans=rng.normal(size=3)),
                Pose(rot=offset.T @ ref_rot @ mount, trans=rng.normal(size=3)),
            )
        )
    return samples


def test_recovers_known_rotation_offset():
    messages = MessageSink()
    euler = calibrate_rotation(_samples_with_offset([10.0, 30.0, -20.0]), messages)
    np.testing.assert_allclose(euler, np.array([10.0, 30.0, -20.0]), atol=1e-6)
    assert "Got 20 samples with" in messages.text
    assert "Calibrated rotation: yaw=30.00 pitch=-20.00 roll=10.00" in messages.text


def test_recovers_pure_yaw_offset():
    euler = calibrate_rotation(_samples_with_offset([0.0, 30.0, 0.0], seed=3), MessageSink())
    np.testing.assert_allclose(euler, np.array([0.0, 30.0, 0.0]), atol=1e-6)


def test_only_distinct_pairs_are_considered():
    samples = _samples_with_offset([0.0, 0.0, 0.0], n=6)
    deltas = collect_delta_samples(samples, min_angle=0.0, min_axis_norm=0.0)
    assert len(deltas) == 15


def test_zero_valid_deltas_is_a_calibration_failure():
    rot = q_to_rotmat(euler_zyx_deg_to_q(np.array([5.0, 10.0, 15.0])))
    samples = [
        Sample.of(Pose(rot=rot, trans=np.zeros(3)), Pose(rot=rot, trans=np.zeros(3)))
        for _ in range(10)
    ]
    messages = MessageSink()
    with pytest.raises(CalibrationError):
        calibrate_rotation(samples, messages)
    assert "Got 10 samples with 0 delta samples" in messages.text
