import numpy as np

from SpaceCalibrator.control.message_sink import MessageSink
from SpaceCalibrator.control.pose import Pose, Sample
from SpaceCalibrator.control.translation_calibrator import (
    build_translation_system,
    calibrate_translation,
    solve_translation,
)
from SpaceCalibrator.math3d.quaternion import axis_angle_to_q, q_to_rotmat


def _random_rotation(rng: np.random.Generator) -> np.ndarray:
    return q_to_rotmat(axis_angle_to_q(rng.normal(size=3), rng.uniform(0.0, np.pi)))


def _samples_with_translation(offset_m: np.ndarray, n: int = 12, seed: int = 11) -> list[Sample]:
    """Rotation already corrected; target positions shifted by -offset."""
    rng = np.random.default_rng(seed)
    mount = _random_rotation(rng)
    lever = np.array([0.05, -0.12, 0.08], dtype=np.float64)
    samples = []
    for _ in range(n):
        ref_rot = _random_rotation(rng)
        ref_pos = rng.uniform(-1.0, 1.0, size=3) + np.array([0.0, 1.2, 0.0])
        target_pos = ref_pos + ref_rot @ lever - offset_m
        samples.append(
            Sample.of(
                Pose(rot=ref_rot, trans=ref_pos),
                Pose(rot=ref_rot @ mount, trans=target_pos),
            )
        )
    return samples


def test_recovers_known_translation_offset():
    offset_m = np.array([0.25, -1.10, 0.42], dtype=np.float64)
    messages = MessageSink()
    t_cm = calibrate_translation(_samples_with_translation(offset_m), messages)
    np.testing.assert_allclose(t_cm, offset_m * 100.0, atol=1e-6)
    assert "Calibrated translation x=25.00 y=-110.00 z=42.00" in messages.text


def test_system_has_two_equations_per_pair():
    samples = _samples_with_translation(np.zeros(3), n=5)
    coefficients, constants = build_translation_system(samples)
    assert coefficients.shape == (2 * 10 * 3, 3)
    assert constants.shape == (2 * 10 * 3,)


def test_well_posed_fit_reports_full_rank():
    fit = solve_translation(_samples_with_translation(np.array([0.1, 0.2, 0.3])))
    assert fit.rank == 3
    assert np.isfinite(fit.condition_number)
    assert fit.condition_number >= 1.0


def test_static_relative_pose_returns_best_effort_result():
    pose = Pose(rot=np.eye(3), trans=np.array([0.1, 0.2, 0.3]))
    samples = [Sample.of(pose, Pose.from_coordinates(0.0, 0.0, 0.0)) for _ in range(4)]
    fit = solve_translation(samples)
    assert fit.rank < 3
    assert fit.condition_number == float("inf")
    assert np.isfinite(fit.translation_cm).all()


def test_fewer_than_two_samples_gives_zero_vector():
    sample = Sample.of(Pose.from_coordinates(1.0, 0.0, 0.0), Pose.from_coordinates(0.0, 0.0, 0.0))
    fit = solve_translation([sample])
    assert fit.rank == 0
    np.testing.assert_allclose(fit.translation_cm, np.zeros(3))
