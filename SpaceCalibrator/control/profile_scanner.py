"""Re-apply the calibrated offset to every device of the target tracking system."""

from __future__ import annotations

import logging

import numpy as np

from ..math3d.quaternion import euler_zyx_deg_to_q
from ..math3d.rotation import cm_to_m
from .context import CalibrationContext
from .offset_sink import OffsetSink
from .tracking_source import DeviceClass

logger = logging.getLogger(__name__)


def offset_quaternion(ctx: CalibrationContext) -> np.ndarray:
    return euler_zyx_deg_to_q(ctx.calibrated_rotation)


def offset_translation_m(ctx: CalibrationContext) -> np.ndarray:
    return cm_to_m(ctx.calibrated_translation)


def scan_and_apply_profile(ctx: CalibrationContext, sink: OffsetSink) -> list[int]:
    """Push the current offsets to matching devices; return the ids updated."""
    q = offset_quaternion(ctx)
    t = offset_translation_m(ctx)
    applied = []
    for device_id in sorted(ctx.device_poses):
        dev = ctx.device_poses[device_id]
        if dev.device_class is DeviceClass.INVALID:
            continue
        if dev.tracking_system != ctx.target_tracking_system:
            continue

        if dev.device_class in (DeviceClass.HMD, DeviceClass.TRACKING_REFERENCE):
            # TODO: detect zero reference switches and re-derive the offset.
            continue
        elif dev.device_class in (DeviceClass.CONTROLLER, DeviceClass.GENERIC_TRACKER):
            sink.set_rotation_offset(device_id, q)
            sink.set_translation_offset(device_id, t)
            sink.enable_offsets(device_id, True)
            applied.append(device_id)
        else:
            raise ValueError(f"unhandled device class: {dev.device_class}")

    if applied:
        logger.debug("[CAL] applied profile offsets to devices %s", applied)
    return applied
