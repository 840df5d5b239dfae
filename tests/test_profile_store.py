import json

import numpy as np
import pytest

from SpaceCalibrator.control.context import CalibrationContext
from SpaceCalibrator.control.profile_store import (
    CalibrationProfile,
    ProfileStore,
    apply_profile,
    profile_from_context,
)


def _profile() -> CalibrationProfile:
    return CalibrationProfile(
        reference_tracking_system="lighthouse",
        target_tracking_system="oculus",
        rotation_deg=(1.5, -30.0, 2.25),
        translation_cm=(10.0, -4.5, 120.0),
        reference_serial="LHR-1",
        target_serial="WMHD-2",
        saved_at="2024-01-01T00:00:00+00:00",
    )


def test_save_then_load_returns_same_profile(tmp_path):
    store = ProfileStore(tmp_path / "nested" / "profile.json")
    store.save(_profile())
    assert store.load() == _profile()
    payload = json.loads(store.path.read_text(encoding="utf-8"))
    assert payload["version"] == 1
    assert list(tmp_path.joinpath("nested").iterdir()) == [store.path]


def test_missing_profile_loads_as_none(tmp_path):
    assert ProfileStore(tmp_path / "absent.json").load() is None


def test_invalid_json_is_rejected(tmp_path):
    path = tmp_path / "profile.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ValueError, match="failed to parse profile"):
        ProfileStore(path).load()


def test_bad_vector_is_rejected(tmp_path):
    path = tmp_path / "profile.json"
    path.write_text(
        json.dumps(
            {
                "target_tracking_system": "oculus",
                "rotation_deg": [0.0, 1.0],
                "translation_cm": [0.0, 0.0, 0.0],
            }
        ),
        encoding="utf-8",
    )
    with pytest.raises(ValueError, match="rotation_deg"):
        ProfileStore(path).load()


def test_missing_target_system_is_rejected(tmp_path):
    path = tmp_path / "profile.json"
    path.write_text(
        json.dumps({"rotation_deg": [0, 0, 0], "translation_cm": [0, 0, 0]}),
        encoding="utf-8",
    )
    with pytest.raises(ValueError, match="target_tracking_system"):
        ProfileStore(path).load()


def test_apply_profile_marks_context_valid():
    ctx = CalibrationContext()
    apply_profile(ctx, _profile())
    assert ctx.valid_profile
    assert ctx.target_tracking_system == "oculus"
    assert ctx.reference_tracking_system == "lighthouse"
    np.testing.assert_allclose(ctx.calibrated_rotation, np.array([1.5, -30.0, 2.25]))
    np.testing.assert_allclose(ctx.calibrated_translation, np.array([10.0, -4.5, 120.0]))


def test_profile_from_context_copies_offsets():
    ctx = CalibrationContext()
    apply_profile(ctx, _profile())
    profile = profile_from_context(ctx)
    assert profile.rotation_deg == (1.5, -30.0, 2.25)
    assert profile.translation_cm == (10.0, -4.5, 120.0)
    assert profile.target_tracking_system == "oculus"
    assert profile.saved_at
