"""NTP client subsystem: timestamp codec, packet, client and observer."""

from .client import DEFAULT_HOST, NTP_PORT, NtpClient
from .errors import (
    InvalidServerResponseError,
    MalformedPacketError,
    NetworkError,
    NtpError,
    NtpTimeoutError,
)
from .observer import Observer, ObserverState
from .packet import LeapIndicator, Mode, Packet
from .timestamp import from_datetime, to_datetime

__all__ = [
    "DEFAULT_HOST",
    "NTP_PORT",
    "InvalidServerResponseError",
    "LeapIndicator",
    "MalformedPacketError",
    "Mode",
    "NetworkError",
    "NtpClient",
    "NtpError",
    "NtpTimeoutError",
    "Observer",
    "ObserverState",
    "Packet",
    "from_datetime",
    "to_datetime",
]
