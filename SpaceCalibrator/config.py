"""CLI config and defaults."""

from __future__ import annotations

import argparse
import math
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

import yaml


@dataclass(frozen=True)
class AppConfig:
    tracking_source: str = "udp"
    bridge_host: str = "127.0.0.1"
    bridge_port: int = 24567
    poll_ms: int = 10
    stale_after_s: float = 0.5
    replay_path: str = ""
    replay_step_s: float = 0.1
    replay_realtime: bool = False
    replay_loop: bool = False
    offset_sink: str = "udp"
    offset_host: str = "127.0.0.1"
    offset_port: int = 24568
    profile: str = "space_calibration.json"
    reference_id: int = -1
    target_id: int = -1
    target_tracking_system: str = ""
    calibrate: bool = False
    sample_count: int = 100
    tick_interval_s: float = 0.05
    rescan_interval_s: float = 2.5
    min_delta_angle_rad: float = 0.4
    min_axis_norm: float = 0.01
    log_level: str = "info"
    display_hz: float = 1.0
    cli_output: str = "live"


_APP_CONFIG_FIELDS = {f.name for f in fields(AppConfig)}
_BOOL_FIELDS = {
    "replay_realtime",
    "replay_loop",
    "calibrate",
}
_INT_FIELDS = {
    "bridge_port",
    "poll_ms",
    "offset_port",
    "reference_id",
    "target_id",
    "sample_count",
}
_FLOAT_FIELDS = {
    "stale_after_s",
    "replay_step_s",
    "tick_interval_s",
    "rescan_interval_s",
    "min_delta_angle_rad",
    "min_axis_norm",
    "display_hz",
}
_STRING_FIELDS = {
    "tracking_source",
    "bridge_host",
    "replay_path",
    "offset_sink",
    "offset_host",
    "profile",
    "target_tracking_system",
    "log_level",
    "cli_output",
}
_KEY_ALIASES = {
    "reference": "reference_id",
    "target": "target_id",
}


def _parse_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        s = value.strip().lower()
        if s in {"1", "true", "yes", "on"}:
            return True
        if s in {"0", "false", "no", "off"}:
            return False
    raise ValueError(f"config key '{key}' expects a bool, got {value!r}")


def _coerce_config_value(key: str, value: Any) -> Any:
    try:
        if key in _BOOL_FIELDS:
            return _parse_bool(value, key)
        if key in _INT_FIELDS:
            return int(value)
        if key in _FLOAT_FIELDS:
            return float(value)
        if key in _STRING_FIELDS:
            return "" if value is None else str(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"invalid value for config key '{key}': {value!r}") from exc
    raise ValueError(f"unsupported config key '{key}'")


def _normalize_config_key(raw_key: Any) -> str:
    if not isinstance(raw_key, str):
        raise ValueError(f"config key must be string, got {type(raw_key).__name__}")
    key = raw_key.strip().replace("-", "_")
    if not key:
        raise ValueError("config key cannot be empty")
    return _KEY_ALIASES.get(key, key)


def _load_yaml_config(path: str) -> dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise ValueError(f"--config file not found: {p}")
    if not p.is_file():
        raise ValueError(f"--config must point to a file: {p}")

    try:
        text = p.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"failed to read --config file {p}: {exc}") from exc
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ValueError(f"failed to parse YAML config {p}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ValueError(f"--config root must be a mapping/object, got {type(loaded).__name__}")

    normalized: dict[str, Any] = {}
    for raw_key, raw_value in loaded.items():
        key = _normalize_config_key(raw_key)
        if key not in _APP_CONFIG_FIELDS:
            raise ValueError(f"unknown config key in {p}: {raw_key!r}")
        normalized[key] = _coerce_config_value(key, raw_value)
    return normalized


def build_arg_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description="Calibrate the offset between two tracking systems and keep it applied.",
    )
    ap.add_argument(
        "--config",
        type=str,
        default="",
        help="YAML config file path. CLI args override YAML values.",
    )
    ap.add_argument(
        "--tracking-source",
        choices=["udp", "replay"],
        default="udp",
        help="Device pose source: live runtime bridge over UDP, or a JSON-lines recording.",
    )
    ap.add_argument(
        "--bridge-host",
        type=str,
        default="127.0.0.1",
        help="Host to bind for tracking bridge UDP snapshots.",
    )
    ap.add_argument(
        "--bridge-port",
        type=int,
        default=24567,
        help="Port to bind for tracking bridge UDP snapshots.",
    )
    ap.add_argument(
        "--poll-ms",
        type=int,
        default=10,
        help="Minimum polling sleep in milliseconds.",
    )
    ap.add_argument(
        "--stale-after-s",
        type=float,
        default=0.5,
        help="Report devices as not tracking when no bridge packet arrived for this long.",
    )
    ap.add_argument(
        "--replay-path",
        type=str,
        default="",
        help="JSON-lines recording for --tracking-source replay.",
    )
    ap.add_argument(
        "--replay-step-s",
        type=float,
        default=0.1,
        help="Clock step per replayed frame when frames carry no timestamp.",
    )
    ap.add_argument("--replay-realtime", action="store_true", help="Pace replay in wall time.")
    ap.add_argument("--replay-loop", action="store_true", help="Loop the replay recording.")
    ap.add_argument(
        "--offset-sink",
        choices=["udp", "log"],
        default="udp",
        help="Where offsets go: driver bridge over UDP, or log only (dry run).",
    )
    ap.add_argument(
        "--offset-host",
        type=str,
        default="127.0.0.1",
        help="Host of the offset driver bridge.",
    )
    ap.add_argument(
        "--offset-port",
        type=int,
        default=24568,
        help="Port of the offset driver bridge.",
    )
    ap.add_argument(
        "--profile",
        type=str,
        default="space_calibration.json",
        help="Calibration profile JSON file (loaded at startup, written after calibration).",
    )
    ap.add_argument(
        "--reference-id",
        type=int,
        default=-1,
        help="Device slot id of the reference device (-1 = unset).",
    )
    ap.add_argument(
        "--target-id",
        type=int,
        default=-1,
        help="Device slot id of the target device (-1 = unset).",
    )
    ap.add_argument(
        "--target-tracking-system",
        type=str,
        default="",
        help="Tracking system name receiving offsets; overrides the stored profile.",
    )
    ap.add_argument(
        "--calibrate",
        action="store_true",
        help="Start a calibration run immediately.",
    )
    ap.add_argument(
        "--sample-count",
        type=int,
        default=100,
        help="Samples collected per calibration phase.",
    )
    ap.add_argument(
        "--tick-interval-s",
        type=float,
        default=0.05,
        help="Minimum time between calibration ticks.",
    )
    ap.add_argument(
        "--rescan-interval-s",
        type=float,
        default=2.5,
        help="Interval between profile re-applications while idle.",
    )
    ap.add_argument(
        "--min-delta-angle-rad",
        type=float,
        default=0.4,
        help="Minimum relative rotation between two samples for the rotation fit.",
    )
    ap.add_argument(
        "--min-axis-norm",
        type=float,
        default=0.01,
        help="Minimum raw rotation axis norm for the rotation fit.",
    )
    ap.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        default="info",
        help="Global log level.",
    )
    ap.add_argument(
        "--display-hz",
        type=float,
        default=1.0,
        help="Status display refresh rate in Hz (0 disables display updates).",
    )
    ap.add_argument(
        "--cli-output",
        choices=["live", "scroll"],
        default="live",
        help="Status output mode: in-place live panel or scrolling logs.",
    )

    return ap


def validate_config(cfg: AppConfig) -> None:
    if cfg.tracking_source not in {"udp", "replay"}:
        raise ValueError(
            f"--tracking-source must be one of udp|replay, got {cfg.tracking_source}"
        )
    if cfg.tracking_source == "replay" and not cfg.replay_path.strip():
        raise ValueError("--replay-path must be provided for --tracking-source replay")
    if not cfg.bridge_host.strip():
        raise ValueError("--bridge-host must be non-empty")
    if not (1 <= cfg.bridge_port <= 65535):
        raise ValueError(f"--bridge-port must be in [1,65535], got {cfg.bridge_port}")
    if cfg.poll_ms <= 0:
        raise ValueError(f"--poll-ms must be > 0, got {cfg.poll_ms}")
    if cfg.stale_after_s <= 0.0:
        raise ValueError(f"--stale-after-s must be > 0, got {cfg.stale_after_s}")
    if cfg.replay_step_s <= 0.0:
        raise ValueError(f"--replay-step-s must be > 0, got {cfg.replay_step_s}")
    if cfg.offset_sink not in {"udp", "log"}:
        raise ValueError(f"--offset-sink must be one of udp|log, got {cfg.offset_sink}")
    if not cfg.offset_host.strip():
        raise ValueError("--offset-host must be non-empty")
    if not (1 <= cfg.offset_port <= 65535):
        raise ValueError(f"--offset-port must be in [1,65535], got {cfg.offset_port}")
    if not cfg.profile.strip():
        raise ValueError("--profile must be non-empty")
    if cfg.reference_id < -1:
        raise ValueError(f"--reference-id must be >= -1, got {cfg.reference_id}")
    if cfg.target_id < -1:
        raise ValueError(f"--target-id must be >= -1, got {cfg.target_id}")
    if cfg.reference_id >= 0 and cfg.reference_id == cfg.target_id:
        raise ValueError("--reference-id and --target-id must name different devices")
    if cfg.sample_count < 2:
        raise ValueError(f"--sample-count must be >= 2, got {cfg.sample_count}")
    if cfg.tick_interval_s < 0.0:
        raise ValueError(f"--tick-interval-s must be >= 0, got {cfg.tick_interval_s}")
    if cfg.rescan_interval_s < 0.0:
        raise ValueError(f"--rescan-interval-s must be >= 0, got {cfg.rescan_interval_s}")
    if not (0.0 <= cfg.min_delta_angle_rad < math.pi):
        raise ValueError(
            f"--min-delta-angle-rad must be in [0,pi), got {cfg.min_delta_angle_rad}"
        )
    if not (0.0 <= cfg.min_axis_norm < 2.0):
        raise ValueError(f"--min-axis-norm must be in [0,2), got {cfg.min_axis_norm}")
    if cfg.log_level not in {"debug", "info", "warning", "error"}:
        raise ValueError(
            f"--log-level must be one of debug|info|warning|error, got {cfg.log_level}"
        )
    if cfg.display_hz < 0.0:
        raise ValueError(f"--display-hz must be >= 0, got {cfg.display_hz}")
    if cfg.cli_output not in {"live", "scroll"}:
        raise ValueError(f"--cli-output must be live|scroll, got {cfg.cli_output}")


def parse_args(argv=None) -> AppConfig:
    bootstrap = argparse.ArgumentParser(add_help=False)
    bootstrap.add_argument("--config", type=str, default="")
    bootstrap_ns, _ = bootstrap.parse_known_args(argv)

    yaml_cfg: dict[str, Any] = {}
    yaml_error: Optional[str] = None
    if bootstrap_ns.config:
        try:
            yaml_cfg = _load_yaml_config(bootstrap_ns.config)
        except ValueError as exc:
            yaml_error = str(exc)

    ap = build_arg_parser()
    if yaml_error is not None:
        ap.error(yaml_error)
    if yaml_cfg:
        ap.set_defaults(**yaml_cfg)
    args = ap.parse_args(argv)

    cfg = AppConfig(**{name: getattr(args, name) for name in _APP_CONFIG_FIELDS})
    try:
        validate_config(cfg)
    except ValueError as exc:
        ap.error(str(exc))
    return cfg
