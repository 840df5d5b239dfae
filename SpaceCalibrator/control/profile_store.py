"""Calibration profile persistence as a JSON file."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import numpy as np

from .context import CalibrationContext

logger = logging.getLogger(__name__)

PROFILE_VERSION = 1


@dataclass(frozen=True)
class CalibrationProfile:
    reference_tracking_system: str
    target_tracking_system: str
    rotation_deg: tuple[float, float, float]
    translation_cm: tuple[float, float, float]
    reference_serial: str = ""
    target_serial: str = ""
    saved_at: str = ""


def _parse_vec3(payload: dict[str, Any], key: str, path: Path) -> tuple[float, float, float]:
    raw = payload.get(key)
    try:
        v = np.asarray(raw, dtype=np.float64).reshape(-1)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{path}: '{key}' must be a list of 3 numbers, got {raw!r}") from exc
    if v.size != 3 or not np.isfinite(v).all():
        raise ValueError(f"{path}: '{key}' must be a list of 3 finite numbers, got {raw!r}")
    return float(v[0]), float(v[1]), float(v[2])


def profile_from_payload(payload: Any, path: Path) -> CalibrationProfile:
    if not isinstance(payload, dict):
        raise ValueError(f"{path}: profile root must be an object, got {type(payload).__name__}")
    target_system = payload.get("target_tracking_system")
    if not isinstance(target_system, str) or not target_system.strip():
        raise ValueError(f"{path}: 'target_tracking_system' must be a non-empty string")
    return CalibrationProfile(
        reference_tracking_system=str(payload.get("reference_tracking_system", "")),
        target_tracking_system=target_system,
        rotation_deg=_parse_vec3(payload, "rotation_deg", path),
        translation_cm=_parse_vec3(payload, "translation_cm", path),
        reference_serial=str(payload.get("reference_serial", "")),
        target_serial=str(payload.get("target_serial", "")),
        saved_at=str(payload.get("saved_at", "")),
    )


def profile_to_payload(profile: CalibrationProfile) -> dict[str, Any]:
    return {
        "version": PROFILE_VERSION,
        "reference_tracking_system": profile.reference_tracking_system,
        "target_tracking_system": profile.target_tracking_system,
        "rotation_deg": list(profile.rotation_deg),
        "translation_cm": list(profile.translation_cm),
        "reference_serial": profile.reference_serial,
        "target_serial": profile.target_serial,
        "saved_at": profile.saved_at,
    }


class ProfileStore:
    """Loads and saves the single calibration profile at ``path``."""

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)

    def load(self) -> Optional[CalibrationProfile]:
        if not self.path.exists():
            logger.info("[PROFILE] no stored profile at %s", self.path)
            return None
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ValueError(f"failed to read profile {self.path}: {exc}") from exc
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"failed to parse profile {self.path}: {exc}") from exc
        profile = profile_from_payload(payload, self.path)
        logger.info(
            "[PROFILE] loaded %s (target system=%s)",
            self.path,
            profile.target_tracking_system,
        )
        return profile

    def save(self, profile: CalibrationProfile) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = json.dumps(profile_to_payload(profile), indent=2)
        fd, tmp = tempfile.mkstemp(prefix=".profile-", suffix=".json", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(data)
                f.write("\n")
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
        logger.info("[PROFILE] saved %s", self.path)


def profile_from_context(ctx: CalibrationContext) -> CalibrationProfile:
    ref = ctx.device(ctx.reference_id)
    target = ctx.device(ctx.target_id)
    r = ctx.calibrated_rotation
    t = ctx.calibrated_translation
    return CalibrationProfile(
        reference_tracking_system=ctx.reference_tracking_system,
        target_tracking_system=ctx.target_tracking_system,
        rotation_deg=(float(r[0]), float(r[1]), float(r[2])),
        translation_cm=(float(t[0]), float(t[1]), float(t[2])),
        reference_serial="" if ref is None else ref.serial,
        target_serial="" if target is None else target.serial,
        saved_at=datetime.now(timezone.utc).isoformat(timespec="seconds"),
    )


def apply_profile(ctx: CalibrationContext, profile: CalibrationProfile) -> None:
    """Load a stored profile into the context and mark it valid."""
    ctx.calibrated_rotation = np.array(profile.rotation_deg, dtype=np.float64)
    ctx.calibrated_translation = np.array(profile.translation_cm, dtype=np.float64)
    ctx.reference_tracking_system = profile.reference_tracking_system
    ctx.target_tracking_system = profile.target_tracking_system
    ctx.valid_profile = True
