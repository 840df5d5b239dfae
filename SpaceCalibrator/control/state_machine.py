"""Tick-driven calibration state machine.

NONE -> BEGIN -> ROTATION -> TRANSLATION -> NONE, plus an EDITING state
entered from outside while an offset is tuned by hand.
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from ..math3d.quaternion import euler_zyx_deg_to_q
from ..math3d.rotation import cm_to_m
from .context import UNSET_DEVICE, CalibrationContext, CalibrationState
from .offset_sink import OffsetSink
from .pose import MIN_AXIS_NORM, MIN_DELTA_ANGLE_RAD, Sample
from .profile_scanner import scan_and_apply_profile
from .profile_store import ProfileStore, profile_from_context
from .rotation_calibrator import CalibrationError, calibrate_rotation
from .tracking_source import TrackingSource
from .translation_calibrator import calibrate_translation

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_COUNT = 100
DEFAULT_TICK_INTERVAL_S = 0.05
DEFAULT_RESCAN_INTERVAL_S = 2.5
IDLE_UPDATE_INTERVAL_S = 1.0


def collect_sample(ctx: CalibrationContext) -> Sample:
    """Pair the current reference and target poses; abort when either is lost."""
    ok = True
    if not ctx.is_tracking(ctx.reference_id):
        ctx.messages.message("Reference device is not tracking\n")
        ok = False
    if not ctx.is_tracking(ctx.target_id):
        ctx.messages.message("Target device is not tracking\n")
        ok = False
    if not ok:
        ctx.messages.message("Aborting calibration!\n")
        ctx.state = CalibrationState.NONE
        return Sample()

    return Sample.of(
        ctx.device_poses[ctx.reference_id].pose,
        ctx.device_poses[ctx.target_id].pose,
    )


class CalibrationController:
    def __init__(
        self,
        context: CalibrationContext,
        tracking_source: TrackingSource,
        offset_sink: OffsetSink,
        profile_store: Optional[ProfileStore] = None,
        sample_count: int = DEFAULT_SAMPLE_COUNT,
        tick_interval: float = DEFAULT_TICK_INTERVAL_S,
        rescan_interval: float = DEFAULT_RESCAN_INTERVAL_S,
        min_delta_angle: float = MIN_DELTA_ANGLE_RAD,
        min_axis_norm: float = MIN_AXIS_NORM,
    ):
        if sample_count < 2:
            raise ValueError(f"sample_count must be >= 2, got {sample_count}")
        self.ctx = context
        self.tracking_source = tracking_source
        self.offset_sink = offset_sink
        self.profile_store = profile_store
        self.sample_count = int(sample_count)
        self.tick_interval = float(tick_interval)
        self.rescan_interval = float(rescan_interval)
        self.min_delta_angle = float(min_delta_angle)
        self.min_axis_norm = float(min_axis_norm)

        self.samples: list[Sample] = []
        # Rotation committed before this run, restored if the run aborts.
        self._rotation_before_run: np.ndarray | None = None

    @property
    def state(self) -> CalibrationState:
        return self.ctx.state

    @property
    def wanted_update_interval(self) -> float:
        return self.ctx.wanted_update_interval

    def start_calibration(self) -> None:
        ctx = self.ctx
        ctx.state = CalibrationState.BEGIN
        ctx.wanted_update_interval = 0.0
        ctx.messages.clear()
        self._reset_run()

    def begin_editing(self) -> None:
        self._reset_run()
        self.ctx.state = CalibrationState.EDITING
        self.ctx.wanted_update_interval = 0.0

    def set_manual_offset(self, rotation_deg, translation_cm) -> None:
        rotation = np.asarray(rotation_deg, dtype=np.float64).reshape(3).copy()
        translation = np.asarray(translation_cm, dtype=np.float64).reshape(3).copy()
        if not (np.isfinite(rotation).all() and np.isfinite(translation).all()):
            raise ValueError("manual offset must be finite")
        self.ctx.calibrated_rotation = rotation
        self.ctx.calibrated_translation = translation

    def finish_editing(self, save: bool = True) -> None:
        if self.ctx.state is not CalibrationState.EDITING:
            return
        self.ctx.state = CalibrationState.NONE
        self.ctx.wanted_update_interval = IDLE_UPDATE_INTERVAL_S
        if save and self.ctx.valid_profile:
            self._save_profile()

    def tick(self, now: float) -> float:
        """Advance the state machine; returns the wanted wait before the next tick."""
        ctx = self.ctx
        if (now - ctx.time_last_tick) < self.tick_interval:
            return ctx.wanted_update_interval

        ctx.time_last_tick = now
        ctx.device_poses = self.tracking_source.get_snapshot()

        if ctx.state is CalibrationState.NONE:
            self._tick_idle(now)
        elif ctx.state is CalibrationState.EDITING:
            ctx.wanted_update_interval = 0.0
            if ctx.valid_profile:
                scan_and_apply_profile(ctx, self.offset_sink)
        elif ctx.state is CalibrationState.BEGIN:
            self._tick_begin()
        else:
            self._tick_sampling()
        return ctx.wanted_update_interval

    def _tick_idle(self, now: float) -> None:
        ctx = self.ctx
        ctx.wanted_update_interval = IDLE_UPDATE_INTERVAL_S
        if not ctx.valid_profile:
            return
        if (now - ctx.time_last_scan) >= self.rescan_interval:
            scan_and_apply_profile(ctx, self.offset_sink)
            ctx.time_last_scan = now

    def _tick_begin(self) -> None:
        ctx = self.ctx
        ok = True

        if ctx.reference_id == UNSET_DEVICE:
            ctx.messages.message("Missing reference device\n")
            ok = False
        elif not ctx.is_tracking(ctx.reference_id):
            ctx.messages.message("Reference device is not tracking\n")
            ok = False

        if ctx.target_id == UNSET_DEVICE:
            ctx.messages.message("Missing target device\n")
            ok = False
        elif not ctx.is_tracking(ctx.target_id):
            ctx.messages.message("Target device is not tracking\n")
            ok = False

        if not ok:
            self._abort()
            return

        self.offset_sink.reset_and_disable(ctx.target_id)
        ctx.state = CalibrationState.ROTATION
        ctx.wanted_update_interval = 0.0
        ctx.messages.message(
            "Starting calibration, referenceID=%d targetID=%d\n" % (ctx.reference_id, ctx.target_id)
        )

    def _tick_sampling(self) -> None:
        ctx = self.ctx
        sample = collect_sample(ctx)
        if not sample.valid:
            if ctx.state is CalibrationState.NONE:
                self._reset_run()
            return
        ctx.messages.message(".")

        self.samples.append(sample)
        if len(self.samples) < self.sample_count:
            return

        ctx.messages.message("\n")
        try:
            if ctx.state is CalibrationState.ROTATION:
                self._finish_rotation()
            elif ctx.state is CalibrationState.TRANSLATION:
                self._finish_translation()
        except CalibrationError as exc:
            ctx.messages.message(f"{exc}\n")
            self._abort()
            return
        finally:
            self.samples.clear()

    def _finish_rotation(self) -> None:
        ctx = self.ctx
        rotation = calibrate_rotation(
            self.samples,
            ctx.messages,
            min_angle=self.min_delta_angle,
            min_axis_norm=self.min_axis_norm,
        )
        self._rotation_before_run = ctx.calibrated_rotation
        ctx.calibrated_rotation = rotation

        self.offset_sink.set_rotation_offset(ctx.target_id, euler_zyx_deg_to_q(rotation))
        self.offset_sink.enable_offsets(ctx.target_id, True)
        ctx.state = CalibrationState.TRANSLATION

    def _finish_translation(self) -> None:
        ctx = self.ctx
        translation = calibrate_translation(self.samples, ctx.messages)
        self.offset_sink.set_translation_offset(ctx.target_id, cm_to_m(translation))

        ctx.calibrated_translation = translation
        self._rotation_before_run = None

        ref = ctx.device(ctx.reference_id)
        target = ctx.device(ctx.target_id)
        if ref is not None and ref.tracking_system:
            ctx.reference_tracking_system = ref.tracking_system
        if target is not None and target.tracking_system:
            ctx.target_tracking_system = target.tracking_system
        ctx.valid_profile = True

        self._save_profile()
        ctx.messages.message("Finished calibration, profile saved\n")
        ctx.state = CalibrationState.NONE
        ctx.wanted_update_interval = IDLE_UPDATE_INTERVAL_S

    def _save_profile(self) -> None:
        if self.profile_store is None:
            return
        try:
            self.profile_store.save(profile_from_context(self.ctx))
        except OSError:
            logger.exception("[PROFILE] failed to save profile to %s", self.profile_store.path)
            self.ctx.messages.message("Failed to save profile\n")

    def _abort(self) -> None:
        self.ctx.messages.message("Aborting calibration!\n")
        self.ctx.state = CalibrationState.NONE
        self.ctx.wanted_update_interval = IDLE_UPDATE_INTERVAL_S
        self._reset_run()

    def _reset_run(self) -> None:
        self.samples.clear()
        if self._rotation_before_run is not None:
            self.ctx.calibrated_rotation = self._rotation_before_run
            self._rotation_before_run = None
