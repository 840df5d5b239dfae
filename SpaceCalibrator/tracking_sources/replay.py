"""Offline tracking source replaying a JSON-lines recording.

Each non-empty line holds one bridge snapshot payload (see
``udp_bridge.UdpBridgeTrackingSource``); an optional "t" field gives the
capture time in seconds.
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Optional

from ..control.tracking_source import DevicePose, Snapshot, TickCallback, TrackingSource
from .udp_bridge import _parse_snapshot_payload

logger = logging.getLogger(__name__)


def load_recording(path: str | Path) -> list[tuple[Optional[float], dict[int, DevicePose]]]:
    p = Path(path)
    if not p.is_file():
        raise OSError(f"replay file not found: {p}")

    frames = []
    with p.open("r", encoding="utf-8") as f:
        for lineno, raw in enumerate(f, start=1):
            line = raw.strip()
            if not line:
                continue
            try:
                payload = json.loads(line)
            except json.JSONDecodeError as exc:
                raise ValueError(f"{p}:{lineno}: invalid JSON: {exc}") from exc
            snapshot = _parse_snapshot_payload(payload)
            if snapshot is None:
                raise ValueError(f"{p}:{lineno}: expected an object with a 'devices' list")
            t = payload.get("t")
            if t is not None:
                try:
                    t = float(t)
                except (TypeError, ValueError) as exc:
                    raise ValueError(f"{p}:{lineno}: 't' must be a number, got {t!r}") from exc
            frames.append((t, snapshot))
    logger.info("[TRACK] loaded %d replay frames from %s", len(frames), p)
    return frames


class ReplayTrackingSource(TrackingSource):
    """Replays recorded snapshots, one per poll.

    With ``realtime=False`` frames are fed as fast as possible on a
    synthetic clock that advances by ``step_s`` (or the recorded "t").
    """

    name = "replay"

    def __init__(
        self,
        path: str | Path,
        step_s: float = 0.1,
        realtime: bool = False,
        loop: bool = False,
    ):
        self.path = Path(path)
        self.step_s = max(1e-3, float(step_s))
        self.realtime = bool(realtime)
        self.loop = bool(loop)
        self._frames = load_recording(self.path)
        self._index = -1
        self._clock = 0.0
        self._t_offset = 0.0
        self._closed = False

    def get_snapshot(self) -> Snapshot:
        if self._index < 0 or not self._frames:
            return {}
        return dict(self._frames[self._index][1])

    def advance(self) -> bool:
        """Move to the next frame; False once the recording is exhausted."""
        if self._index + 1 >= len(self._frames):
            if not self.loop or not self._frames:
                return False
            self._index = -1
            first_t = self._frames[0][0]
            if first_t is not None:
                # Keep the clock monotonic across loops.
                self._t_offset = self._clock + self.step_s - first_t
        self._index += 1
        t, _ = self._frames[self._index]
        self._clock = t + self._t_offset if t is not None else self._clock + self.step_s
        return True

    @property
    def clock(self) -> float:
        return self._clock

    def run(self, on_tick: TickCallback) -> None:
        while not self._closed:
            if not self.advance():
                logger.info("[TRACK] replay finished after %d frames", len(self._frames))
                break
            now = self._clock if not self.realtime else time.monotonic()
            wanted = on_tick(now)
            if self.realtime:
                time.sleep(max(self.step_s, float(wanted)))
        self.close()

    def close(self) -> None:
        self._closed = True
