"""Live tracking source fed by an external runtime bridge over UDP.

The bridge process owns the tracking runtime session and streams one JSON
snapshot of every device slot per frame to localhost.
"""

from __future__ import annotations

import json
import logging
import socket
import time
from dataclasses import replace
from typing import Optional

import numpy as np

from ..control.pose import Pose
from ..control.tracking_source import (
    MAX_TRACKED_DEVICES,
    DeviceClass,
    DevicePose,
    Snapshot,
    TickCallback,
    TrackingSource,
)
from ..math3d.quaternion import q_to_rotmat

logger = logging.getLogger(__name__)


def _parse_device_pose(entry: dict) -> Optional[Pose]:
    matrix = entry.get("matrix34")
    if matrix is not None:
        m = np.asarray(matrix, dtype=np.float64)
        if m.size != 12 or not np.isfinite(m).all():
            return None
        return Pose.from_device_transform(m.reshape(3, 4))

    position = entry.get("position_m", entry.get("position"))
    quaternion = entry.get("quaternion_wxyz", entry.get("quaternion"))
    if position is None or quaternion is None:
        return None
    p = np.asarray(position, dtype=np.float64).reshape(-1)
    q = np.asarray(quaternion, dtype=np.float64).reshape(-1)
    if p.size != 3 or q.size != 4:
        return None
    if not np.isfinite(p).all() or not np.isfinite(q).all():
        return None
    return Pose(rot=q_to_rotmat(q), trans=p)


def _parse_device_entry(entry) -> Optional[DevicePose]:
    if not isinstance(entry, dict):
        return None
    try:
        device_id = int(entry["id"])
    except (KeyError, TypeError, ValueError):
        return None
    if not (0 <= device_id < MAX_TRACKED_DEVICES):
        return None

    valid = entry.get("valid", entry.get("tracked", True))
    if not isinstance(valid, bool):
        return None
    try:
        pose = _parse_device_pose(entry)
    except (TypeError, ValueError):
        return None
    if pose is None:
        if valid:
            return None
        pose = Pose.from_coordinates(0.0, 0.0, 0.0)

    return DevicePose(
        device_id=device_id,
        pose=pose,
        valid=valid,
        device_class=DeviceClass.parse(entry.get("class", "invalid")),
        tracking_system=str(entry.get("tracking_system", "")),
        serial=str(entry.get("serial", "")),
    )


def _parse_snapshot_payload(payload) -> Optional[dict[int, DevicePose]]:
    if not isinstance(payload, dict):
        return None
    devices = payload.get("devices")
    if not isinstance(devices, list):
        return None
    snapshot: dict[int, DevicePose] = {}
    for entry in devices:
        dev = _parse_device_entry(entry)
        if dev is not None:
            snapshot[dev.device_id] = dev
    return snapshot


def _parse_snapshot_packet(data: bytes) -> Optional[dict[int, DevicePose]]:
    try:
        payload = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    return _parse_snapshot_payload(payload)


def _mark_not_tracking(snapshot: Snapshot) -> dict[int, DevicePose]:
    return {k: replace(v, valid=False) for k, v in snapshot.items()}


class _UdpSnapshotReceiver:
    def __init__(self, host: str, port: int):
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.sock.bind((host, int(port)))
        self.sock.setblocking(False)

    def recv_latest(self) -> Optional[dict[int, DevicePose]]:
        latest = None
        while True:
            try:
                data, _ = self.sock.recvfrom(65535)
            except BlockingIOError:
                break
            except OSError:
                break
            parsed = _parse_snapshot_packet(data)
            if parsed is not None:
                latest = parsed
        return latest

    def close(self) -> None:
        self.sock.close()


class UdpBridgeTrackingSource(TrackingSource):
    """Tracking source fed by runtime bridge messages over UDP.

    Expected JSON packet schema:
    {
      "devices": [
        {
          "id": 0,
          "class": "hmd" | "controller" | "tracker" | "tracking_reference",
          "tracking_system": "lighthouse",
          "serial": "LHR-0000",
          "valid": true,
          "matrix34": [[r00, r01, r02, x], [r10, r11, r12, y], [r20, r21, r22, z]]
        }
      ]
    }

    "position_m" + "quaternion_wxyz" may replace "matrix34". Devices are
    reported as not tracking once no packet arrived for ``stale_after_s``.
    """

    name = "udp"

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 24567,
        poll_ms: int = 10,
        stale_after_s: float = 0.5,
    ):
        self.host = str(host)
        self.port = int(port)
        self.poll_s = max(0.001, float(poll_ms) / 1000.0)
        self.stale_after_s = float(stale_after_s)

        self._receiver = _UdpSnapshotReceiver(self.host, self.port)

        self._closed = False
        self._snapshot: dict[int, DevicePose] = {}
        self._last_warn_t = 0.0
        self._last_recv_t = 0.0
        self._recv_count = 0

        logger.info(
            "[TRACK] source=udp-bridge (host=%s, port=%s, poll_ms=%.1f, stale_after=%.2fs)",
            self.host,
            self.port,
            self.poll_s * 1000.0,
            self.stale_after_s,
        )

    def get_snapshot(self) -> Snapshot:
        if (time.monotonic() - self._last_recv_t) > self.stale_after_s:
            return _mark_not_tracking(self._snapshot)
        return dict(self._snapshot)

    def _poll_once(self) -> None:
        snapshot = self._receiver.recv_latest()
        if snapshot is None:
            now = time.monotonic()
            # Only warn if we have not received any packet recently.
            if (now - self._last_recv_t) > 2.0 and (now - self._last_warn_t) > 2.0:
                logger.info(
                    "[TRACK] waiting for bridge packets on %s:%s",
                    self.host,
                    self.port,
                )
                self._last_warn_t = now
            return

        self._last_recv_t = time.monotonic()
        self._recv_count += 1
        if self._recv_count == 1:
            logger.info(
                "[TRACK] first bridge packet received on %s:%s (%d devices)",
                self.host,
                self.port,
                len(snapshot),
            )
        self._snapshot = snapshot

    def run(self, on_tick: TickCallback) -> None:
        while not self._closed:
            self._poll_once()
            wanted = on_tick(time.monotonic())
            time.sleep(max(self.poll_s, float(wanted)))
        self.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._receiver.close()
        except OSError:
            pass
