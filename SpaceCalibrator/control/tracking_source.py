"""Tracking source interface: per-tick snapshots of every device slot."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Callable, Mapping

from .pose import Pose

MAX_TRACKED_DEVICES = 64


class DeviceClass(enum.Enum):
    INVALID = "invalid"
    HMD = "hmd"
    CONTROLLER = "controller"
    GENERIC_TRACKER = "tracker"
    TRACKING_REFERENCE = "tracking_reference"

    @classmethod
    def parse(cls, value) -> "DeviceClass":
        if isinstance(value, DeviceClass):
            return value
        s = str(value).strip().lower().replace("-", "_")
        aliases = {
            "generic_tracker": cls.GENERIC_TRACKER,
            "reference": cls.TRACKING_REFERENCE,
            "base_station": cls.TRACKING_REFERENCE,
        }
        if s in aliases:
            return aliases[s]
        try:
            return cls(s)
        except ValueError:
            return cls.INVALID


@dataclass(frozen=True, slots=True)
class DevicePose:
    """One device slot of a tracking snapshot."""

    device_id: int
    pose: Pose
    valid: bool
    device_class: DeviceClass = DeviceClass.INVALID
    tracking_system: str = ""
    serial: str = ""


Snapshot = Mapping[int, DevicePose]
# Receives the tick time in seconds, returns the wanted wait before the next tick.
TickCallback = Callable[[float], float]


class TrackingSource:
    """Base interface for tracking runtimes.

    Implementations may be live (UDP bridge) or offline (recorded replay).
    """

    name: str = "base"

    def get_snapshot(self) -> Snapshot:
        """Return the latest pose of every known device slot, keyed by id."""
        raise NotImplementedError

    def run(self, on_tick: TickCallback) -> None:
        """Run the source's polling loop and call on_tick periodically."""
        raise NotImplementedError

    def close(self) -> None:
        pass
