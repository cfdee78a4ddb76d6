"""Shared helper utilities for the CubeClock test-suite."""

from .mocks import FakeClock, FakeNtpClient, wait_until
from .packets import build_server_packet, server_reply

__all__ = [
    "FakeClock",
    "FakeNtpClient",
    "build_server_packet",
    "server_reply",
    "wait_until",
]
