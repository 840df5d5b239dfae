"""
Space calibration between two tracking systems:
- Tracking source (UDP bridge / JSON-lines replay) supplies device snapshots
- Calibration state machine samples a reference and a target device
- Rotation fit (axis alignment) then translation fit (least squares)
- Offset sink pushes the offset to every device of the target tracking system
- Profile JSON keeps the result across sessions

Deps:
  uv add numpy pyyaml
"""

from __future__ import annotations

import logging

from .config import AppConfig, parse_args
from .control.context import CalibrationContext
from .control.display_provider import (
    DisplayProvider,
    NullDisplayProvider,
    TuiDisplayProvider,
    frame_from_controller,
)
from .control.offset_sink import LogOffsetSink, OffsetSink, UdpOffsetSink
from .control.profile_store import ProfileStore, apply_profile
from .control.state_machine import CalibrationController
from .control.tracking_source import TrackingSource

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_tracking_source(cfg: AppConfig) -> TrackingSource:
    if cfg.tracking_source == "udp":
        from .tracking_sources.udp_bridge import UdpBridgeTrackingSource

        return UdpBridgeTrackingSource(
            host=cfg.bridge_host,
            port=cfg.bridge_port,
            poll_ms=cfg.poll_ms,
            stale_after_s=cfg.stale_after_s,
        )

    if cfg.tracking_source == "replay":
        from .tracking_sources.replay import ReplayTrackingSource

        return ReplayTrackingSource(
            cfg.replay_path,
            step_s=cfg.replay_step_s,
            realtime=cfg.replay_realtime,
            loop=cfg.replay_loop,
        )

    raise RuntimeError(f"Unsupported tracking source: {cfg.tracking_source}")


def build_offset_sink(cfg: AppConfig) -> OffsetSink:
    if cfg.offset_sink == "udp":
        return UdpOffsetSink(host=cfg.offset_host, port=cfg.offset_port)
    if cfg.offset_sink == "log":
        logger.info("[OFFSET] sink=log (dry run, offsets are not applied)")
        return LogOffsetSink()
    raise RuntimeError(f"Unsupported offset sink: {cfg.offset_sink}")


def build_display_provider(cfg: AppConfig) -> DisplayProvider:
    if cfg.display_hz <= 0.0:
        return NullDisplayProvider()
    return TuiDisplayProvider(cli_output=cfg.cli_output)


def build_context(cfg: AppConfig, store: ProfileStore) -> CalibrationContext:
    ctx = CalibrationContext(reference_id=cfg.reference_id, target_id=cfg.target_id)

    profile = store.load()
    if profile is not None:
        apply_profile(ctx, profile)
        r = ctx.calibrated_rotation
        t = ctx.calibrated_translation
        logger.info(
            "[PROFILE] target system=%s yaw=%.2f pitch=%.2f roll=%.2f xyz_cm=(%.2f, %.2f, %.2f)",
            ctx.target_tracking_system,
            r[1],
            r[2],
            r[0],
            t[0],
            t[1],
            t[2],
        )

    if cfg.target_tracking_system:
        ctx.target_tracking_system = cfg.target_tracking_system
    return ctx


def make_tick(
    controller: CalibrationController,
    display: DisplayProvider,
    display_hz: float,
):
    display_interval = (1.0 / display_hz) if display_hz > 0.0 else 0.0
    last_display_t = None

    def on_tick(now: float) -> float:
        nonlocal last_display_t
        wanted = controller.tick(now)
        if display_interval > 0.0 and (
            last_display_t is None or (now - last_display_t) >= display_interval
        ):
            display.update(frame_from_controller(controller))
            last_display_t = now
        return wanted

    return on_tick


def main(argv=None):
    cfg = parse_args(argv)
    configure_logging(cfg.log_level)

    store = ProfileStore(cfg.profile)
    try:
        ctx = build_context(cfg, store)
    except ValueError:
        logger.exception("[PROFILE] ignoring unreadable profile %s", cfg.profile)
        ctx = CalibrationContext(reference_id=cfg.reference_id, target_id=cfg.target_id)
        ctx.target_tracking_system = cfg.target_tracking_system

    # No degraded mode without a tracking source.
    try:
        tracking_source = build_tracking_source(cfg)
    except (OSError, ValueError) as exc:
        logger.exception("[TRACK] failed to init tracking source")
        raise SystemExit(f"tracking source unavailable: {exc}") from exc

    offset_sink = build_offset_sink(cfg)
    display = build_display_provider(cfg)
    controller = CalibrationController(
        context=ctx,
        tracking_source=tracking_source,
        offset_sink=offset_sink,
        profile_store=store,
        sample_count=cfg.sample_count,
        tick_interval=cfg.tick_interval_s,
        rescan_interval=cfg.rescan_interval_s,
        min_delta_angle=cfg.min_delta_angle_rad,
        min_axis_norm=cfg.min_axis_norm,
    )
    if cfg.calibrate:
        controller.start_calibration()

    try:
        tracking_source.run(make_tick(controller, display, cfg.display_hz))
    except KeyboardInterrupt:
        logger.info("[CAL] interrupted")
    finally:
        try:
            tracking_source.close()
        finally:
            offset_sink.close()
            display.close()

    r = ctx.calibrated_rotation
    t = ctx.calibrated_translation
    logger.info(
        "[CAL] final state=%s profile=%s ypr=(%.2f, %.2f, %.2f) xyz_cm=(%.2f, %.2f, %.2f)",
        ctx.state.value,
        "valid" if ctx.valid_profile else "none",
        r[1],
        r[2],
        r[0],
        t[0],
        t[1],
        t[2],
    )


if __name__ == "__main__":
    main()
