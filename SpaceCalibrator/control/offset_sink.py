"""Offset sinks: push world-from-driver offsets to the device driver.

All calls are idempotent; re-sending the same offset is expected on every
profile rescan.
"""

from __future__ import annotations

import json
import logging
import socket

import numpy as np

from ..math3d.quaternion import IDENTITY_Q

logger = logging.getLogger(__name__)


class OffsetSink:
    """Base interface for the offset-applying driver."""

    name: str = "base"

    def set_rotation_offset(self, device_id: int, q_wxyz: np.ndarray) -> None:
        raise NotImplementedError

    def set_translation_offset(self, device_id: int, translation_m: np.ndarray) -> None:
        raise NotImplementedError

    def enable_offsets(self, device_id: int, enabled: bool) -> None:
        raise NotImplementedError

    def reset_and_disable(self, device_id: int) -> None:
        self.set_rotation_offset(device_id, IDENTITY_Q.copy())
        self.set_translation_offset(device_id, np.zeros(3, dtype=np.float64))
        self.enable_offsets(device_id, False)

    def close(self) -> None:
        pass


def _offset_packet(device_id: int, op: str, **fields) -> bytes:
    payload = {"device_id": int(device_id), "op": op}
    payload.update(fields)
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


class UdpOffsetSink(OffsetSink):
    """Sends offset commands as JSON datagrams to a driver bridge.

    Packet schema:
    {"device_id": 3, "op": "rotation", "quaternion_wxyz": [w, x, y, z]}
    {"device_id": 3, "op": "translation", "translation_m": [x, y, z]}
    {"device_id": 3, "op": "enable", "enabled": true}
    """

    name = "udp"

    def __init__(self, host: str = "127.0.0.1", port: int = 24568):
        self.host = str(host)
        self.port = int(port)
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self._closed = False
        logger.info("[OFFSET] sink=udp (host=%s, port=%s)", self.host, self.port)

    def _send(self, data: bytes) -> None:
        try:
            self.sock.sendto(data, (self.host, self.port))
        except OSError:
            logger.exception("[OFFSET] failed to send offset packet to %s:%s", self.host, self.port)

    def set_rotation_offset(self, device_id: int, q_wxyz: np.ndarray) -> None:
        q = np.asarray(q_wxyz, dtype=np.float64).reshape(4)
        self._send(_offset_packet(device_id, "rotation", quaternion_wxyz=q.tolist()))

    def set_translation_offset(self, device_id: int, translation_m: np.ndarray) -> None:
        t = np.asarray(translation_m, dtype=np.float64).reshape(3)
        self._send(_offset_packet(device_id, "translation", translation_m=t.tolist()))

    def enable_offsets(self, device_id: int, enabled: bool) -> None:
        self._send(_offset_packet(device_id, "enable", enabled=bool(enabled)))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self.sock.close()
        except OSError:
            pass


class LogOffsetSink(OffsetSink):
    """Dry run: logs offsets instead of applying them."""

    name = "log"

    def set_rotation_offset(self, device_id: int, q_wxyz: np.ndarray) -> None:
        q = np.asarray(q_wxyz, dtype=np.float64).reshape(4)
        logger.info(
            "[OFFSET] device=%d rotation q=[% .4f, % .4f, % .4f, % .4f]",
            device_id,
            q[0],
            q[1],
            q[2],
            q[3],
        )

    def set_translation_offset(self, device_id: int, translation_m: np.ndarray) -> None:
        t = np.asarray(translation_m, dtype=np.float64).reshape(3)
        logger.info(
            "[OFFSET] device=%d translation (m)=[% .4f, % .4f, % .4f]",
            device_id,
            t[0],
            t[1],
            t[2],
        )

    def enable_offsets(self, device_id: int, enabled: bool) -> None:
        logger.info("[OFFSET] device=%d enabled=%s", device_id, bool(enabled))
