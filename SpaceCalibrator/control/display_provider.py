"""Display providers for rendering calibration progress."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass

import numpy as np

from .context import CalibrationState
from .state_machine import CalibrationController

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DisplayFrame:
    """Calibration status shared by all display providers."""

    state: CalibrationState
    samples_collected: int
    sample_count: int
    reference_id: int
    target_id: int
    reference_tracking: bool
    target_tracking: bool
    # ZYX Euler [z, y, x] degrees / [x, y, z] centimeters.
    rotation_deg: np.ndarray
    translation_cm: np.ndarray
    valid_profile: bool
    target_tracking_system: str
    last_message: str


def frame_from_controller(controller: CalibrationController) -> DisplayFrame:
    ctx = controller.ctx
    lines = ctx.messages.lines()
    return DisplayFrame(
        state=ctx.state,
        samples_collected=len(controller.samples),
        sample_count=controller.sample_count,
        reference_id=ctx.reference_id,
        target_id=ctx.target_id,
        reference_tracking=ctx.is_tracking(ctx.reference_id),
        target_tracking=ctx.is_tracking(ctx.target_id),
        rotation_deg=ctx.calibrated_rotation.copy(),
        translation_cm=ctx.calibrated_translation.copy(),
        valid_profile=ctx.valid_profile,
        target_tracking_system=ctx.target_tracking_system,
        last_message=lines[-1] if lines else "",
    )


class DisplayProvider:
    """Base display provider interface."""

    def update(self, frame: DisplayFrame) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


def _status_lines(frame: DisplayFrame) -> list[str]:
    r = frame.rotation_deg
    t = frame.translation_cm
    return [
        "SpaceCalibrator",
        f"state          = {frame.state.value}",
        f"samples        = {frame.samples_collected}/{frame.sample_count}",
        (
            f"reference      = {frame.reference_id} "
            f"({'tracking' if frame.reference_tracking else 'not tracking'})"
        ),
        (
            f"target         = {frame.target_id} "
            f"({'tracking' if frame.target_tracking else 'not tracking'})"
        ),
        f"yaw/pitch/roll = ({r[1]: .2f}, {r[2]: .2f}, {r[0]: .2f}) deg",
        f"translation    = ({t[0]: .2f}, {t[1]: .2f}, {t[2]: .2f}) cm",
        f"profile        = {'valid' if frame.valid_profile else 'none'} "
        f"(target system={frame.target_tracking_system or '-'})",
        f"last message   = {frame.last_message}",
    ]


class _CliStatsSink:
    def __init__(self, mode: str):
        self.mode = "live" if mode == "live" else "scroll"
        self._is_tty = bool(getattr(sys.stderr, "isatty", lambda: False)())
        self._live_enabled = self.mode == "live" and self._is_tty
        self._line_count = 0

    def emit(self, lines: list[str], scroll_line: str) -> None:
        if not self._live_enabled:
            logger.info(scroll_line)
            return

        out = sys.stderr
        if self._line_count > 0:
            out.write(f"\x1b[{self._line_count}F")

        max_lines = max(self._line_count, len(lines))
        for i in range(max_lines):
            line = lines[i] if i < len(lines) else ""
            out.write("\x1b[2K")
            out.write(line)
            out.write("\n")
        out.flush()
        self._line_count = len(lines)


class TuiDisplayProvider(DisplayProvider):
    """Terminal status panel (live) or periodic log lines (scroll)."""

    def __init__(self, cli_output: str = "live"):
        self.cli_sink = _CliStatsSink(cli_output)

    def update(self, frame: DisplayFrame) -> None:
        r = frame.rotation_deg
        t = frame.translation_cm
        self.cli_sink.emit(
            lines=_status_lines(frame),
            scroll_line=(
                "[STATUS] state=%s samples=%d/%d ypr=(%.2f, %.2f, %.2f) xyz_cm=(%.2f, %.2f, %.2f) profile=%s"
                % (
                    frame.state.value,
                    frame.samples_collected,
                    frame.sample_count,
                    r[1],
                    r[2],
                    r[0],
                    t[0],
                    t[1],
                    t[2],
                    "valid" if frame.valid_profile else "none",
                )
            ),
        )


class NullDisplayProvider(DisplayProvider):
    """Display disabled."""

    def update(self, frame: DisplayFrame) -> None:  # noqa: ARG002
        return
