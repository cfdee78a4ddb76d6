"""Single request/response exchange with one NTP server over UDP."""
from __future__ import annotations

import logging
import socket
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from .errors import NetworkError, NtpTimeoutError
from .packet import NTP_VERSION, Packet
from .timestamp import utcnow

LOGGER = logging.getLogger(__name__)

DEFAULT_HOST = "time.windows.com"
NTP_PORT = 123
DEFAULT_TIMEOUT_S = 5.0
# Large enough to notice oversized replies instead of truncating them to 48 bytes.
_RECV_BUFFER = 1024


def validate_timeout(value: float) -> float:
    """Return ``value`` as a float, rejecting non-positive receive timeouts."""
    timeout = float(value)
    if not timeout > 0:
        raise ValueError(f"timeout_s must be positive, got {value!r}")
    return timeout


@dataclass
class NtpClient:
    """Blocking SNTP client bound to one server.

    ``receive`` performs real network I/O and never retries; retry policy
    belongs to :class:`cubeclock.ntp.observer.Observer`.
    """

    host: str = DEFAULT_HOST
    port: int = NTP_PORT
    timeout_s: float = DEFAULT_TIMEOUT_S
    version: int = NTP_VERSION
    clock: Callable[[], datetime] = field(default=utcnow, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.timeout_s = validate_timeout(self.timeout_s)

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    def receive(self) -> Packet:
        """Send one request and decode the reply.

        Raises ``NtpTimeoutError`` when nothing arrives within ``timeout_s``,
        ``NetworkError`` for resolution/transport failures and
        ``MalformedPacketError`` when the reply cannot be decoded.
        """
        request = Packet.request(self.clock(), version=self.version)
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
                sock.settimeout(self.timeout_s)
                sock.sendto(request.encode(), (self.host, self.port))
                data, peer = sock.recvfrom(_RECV_BUFFER)
                destination = self.clock()
        except socket.timeout as exc:
            raise NtpTimeoutError(f"No reply from {self.address} within {self.timeout_s:.3f}s") from exc
        except OSError as exc:
            raise NetworkError(f"NTP exchange with {self.address} failed: {exc}") from exc
        except (ValueError, OverflowError) as exc:
            # bad timeout or port reaching the socket layer
            raise NetworkError(f"Cannot reach {self.address}: {exc}") from exc

        LOGGER.debug("Received %d bytes from %s:%s", len(data), peer[0], peer[1])
        packet = Packet.decode(data, destination)
        LOGGER.debug(
            "NTP reply from %s: stratum=%s offset=%.3fms delay=%.3fms",
            self.address,
            packet.stratum,
            packet.local_clock_offset.total_seconds() * 1000.0,
            packet.round_trip_delay.total_seconds() * 1000.0,
        )
        return packet


__all__ = ["DEFAULT_HOST", "DEFAULT_TIMEOUT_S", "NTP_PORT", "NtpClient", "validate_timeout"]
