"""Tracking source implementations."""

from .replay import ReplayTrackingSource
from .udp_bridge import UdpBridgeTrackingSource

__all__ = [
    "ReplayTrackingSource",
    "UdpBridgeTrackingSource",
]
