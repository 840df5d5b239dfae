"""Calibration state shared by the state machine, scanner and profile store."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

import numpy as np

from .message_sink import MessageSink
from .tracking_source import DevicePose, Snapshot

UNSET_DEVICE = -1


class CalibrationState(enum.Enum):
    NONE = "none"
    BEGIN = "begin"
    ROTATION = "rotation"
    TRANSLATION = "translation"
    EDITING = "editing"


@dataclass(slots=True)
class CalibrationContext:
    """Mutable calibration state; one instance per process, passed explicitly.

    calibrated_rotation:
      ZYX Euler angles [z, y, x], degrees.
    calibrated_translation:
      Offset [x, y, z], centimeters.
    """

    state: CalibrationState = CalibrationState.NONE
    reference_id: int = UNSET_DEVICE
    target_id: int = UNSET_DEVICE
    device_poses: Snapshot = field(default_factory=dict)
    calibrated_rotation: np.ndarray = field(default_factory=lambda: np.zeros(3, dtype=np.float64))
    calibrated_translation: np.ndarray = field(
        default_factory=lambda: np.zeros(3, dtype=np.float64)
    )
    valid_profile: bool = False
    target_tracking_system: str = ""
    reference_tracking_system: str = ""
    time_last_tick: float = 0.0
    time_last_scan: float = 0.0
    wanted_update_interval: float = 1.0
    messages: MessageSink = field(default_factory=MessageSink)

    def device(self, device_id: int) -> DevicePose | None:
        if device_id == UNSET_DEVICE:
            return None
        return self.device_poses.get(device_id)

    def is_tracking(self, device_id: int) -> bool:
        dev = self.device(device_id)
        return dev is not None and dev.valid
