"""Exceptions raised by the NTP client layer."""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .packet import Packet


class NtpError(Exception):
    """Base class for failures talking to an NTP server. All are retryable."""


class NtpTimeoutError(NtpError):
    """No reply arrived within the configured receive timeout."""


class NetworkError(NtpError):
    """Name resolution or datagram transport failed."""


class MalformedPacketError(NtpError):
    """The reply could not be decoded as an NTP packet."""


class InvalidServerResponseError(NtpError):
    """The reply decoded fine but is not usable (wrong mode, stratum 0, ...)."""

    def __init__(self, message: str, packet: Optional["Packet"] = None) -> None:
        super().__init__(message)
        self.packet = packet


__all__ = [
    "NtpError",
    "NtpTimeoutError",
    "NetworkError",
    "MalformedPacketError",
    "InvalidServerResponseError",
]
