import json

import numpy as np

from SpaceCalibrator.app import main
from SpaceCalibrator.control.profile_store import ProfileStore
from SpaceCalibrator.math3d.quaternion import axis_angle_to_q, euler_zyx_deg_to_q, q_to_rotmat


def _random_rotation(rng: np.random.Generator) -> np.ndarray:
    return q_to_rotmat(axis_angle_to_q(rng.normal(size=3), rng.uniform(0.0, np.pi)))


def _entry(device_id, system, rot, trans):
    return {
        "id": device_id,
        "class": "controller",
        "tracking_system": system,
        "serial": f"SN-{device_id}",
        "matrix34": np.hstack([rot, trans.reshape(3, 1)]).tolist(),
    }


def _write_session(path, sample_count, offset_euler_deg, offset_m, seed=9):
    """One Begin frame, then a rotation phase and a rotation-corrected translation phase."""
    rng = np.random.default_rng(seed)
    offset = q_to_rotmat(euler_zyx_deg_to_q(np.asarray(offset_euler_deg, dtype=np.float64)))
    offset_m = np.asarray(offset_m, dtype=np.float64)
    mount = _random_rotation(rng)
    lever = np.array([0.03, 0.08, -0.05])

    lines = []
    for i in range(1 + 2 * sample_count):
        ref_rot = _random_rotation(rng)
        ref_pos = rng.uniform(-1.0, 1.0, size=3)
        target_rot = ref_rot @ mount
        if i <= sample_count:
            target_rot = offset.T @ target_rot
        target_pos = ref_pos + ref_rot @ lever - offset_m
        lines.append(
            json.dumps(
                {
                    "devices": [
                        _entry(0, "lighthouse", ref_rot, ref_pos),
                        _entry(1, "oculus", target_rot, target_pos),
                    ]
                }
            )
        )
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def test_main_calibrates_from_replay(tmp_path):
    session = tmp_path / "session.jsonl"
    profile_path = tmp_path / "profile.json"
    _write_session(session, 30, offset_euler_deg=[0.0, 30.0, 0.0], offset_m=[0.2, 0.0, -0.1])

    main(
        [
            "--tracking-source",
            "replay",
            "--replay-path",
            str(session),
            "--offset-sink",
            "log",
            "--display-hz",
            "0",
            "--reference-id",
            "0",
            "--target-id",
            "1",
            "--sample-count",
            "30",
            "--profile",
            str(profile_path),
            "--calibrate",
        ]
    )

    profile = ProfileStore(profile_path).load()
    assert profile is not None
    assert profile.target_tracking_system == "oculus"
    assert profile.reference_tracking_system == "lighthouse"
    np.testing.assert_allclose(profile.rotation_deg, [0.0, 30.0, 0.0], atol=1e-6)
    np.testing.assert_allclose(profile.translation_cm, [20.0, 0.0, -10.0], atol=1e-6)
