"""In-memory representation of the 48-byte NTP message."""
from __future__ import annotations

import ipaddress
import struct
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import IntEnum
from typing import Any, Dict, Optional

from . import timestamp
from .errors import MalformedPacketError

PACKET_SIZE = 48
NTP_VERSION = 4
# LI/VN/Mode, stratum, poll, precision, root delay, root dispersion,
# reference id, then the reference/originate/receive/transmit timestamps.
_WIRE_FORMAT = struct.Struct("!BBbbiIIQQQQ")
_FIXED_16_16 = float(1 << 16)

MIN_STRATUM = 1
MAX_STRATUM = 15


class LeapIndicator(IntEnum):
    NO_WARNING = 0
    LAST_MINUTE_61 = 1
    LAST_MINUTE_59 = 2
    ALARM = 3


class Mode(IntEnum):
    RESERVED = 0
    SYMMETRIC_ACTIVE = 1
    SYMMETRIC_PASSIVE = 2
    CLIENT = 3
    SERVER = 4
    BROADCAST = 5
    CONTROL = 6
    PRIVATE = 7


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass
class Packet:
    """One NTP message plus the locally stamped destination time (T4)."""

    leap_indicator: LeapIndicator = LeapIndicator.NO_WARNING
    version: int = NTP_VERSION
    mode: Mode = Mode.CLIENT
    stratum: int = 0
    poll: int = 0
    precision: int = 0
    root_delay: float = 0.0
    root_dispersion: float = 0.0
    reference_id: int = 0
    reference_ts: int = 0
    originate_ts: int = 0
    receive_ts: int = 0
    transmit_ts: int = 0
    destination_time: Optional[datetime] = None

    @classmethod
    def request(cls, now: datetime, version: int = NTP_VERSION) -> "Packet":
        """Build a client request stamped with ``now`` as originate/transmit time."""
        stamp = timestamp.from_datetime(now)
        return cls(version=version, mode=Mode.CLIENT, originate_ts=stamp, transmit_ts=stamp)

    @classmethod
    def decode(cls, data: bytes, destination_time: datetime) -> "Packet":
        """Parse a wire packet received at ``destination_time``."""
        if len(data) != PACKET_SIZE:
            raise MalformedPacketError(f"NTP packet must be {PACKET_SIZE} bytes, got {len(data)}")
        (
            header,
            stratum,
            poll,
            precision,
            root_delay,
            root_dispersion,
            reference_id,
            reference_ts,
            originate_ts,
            receive_ts,
            transmit_ts,
        ) = _WIRE_FORMAT.unpack(data)
        return cls(
            leap_indicator=LeapIndicator((header >> 6) & 0x03),
            version=(header >> 3) & 0x07,
            mode=Mode(header & 0x07),
            stratum=stratum,
            poll=poll,
            precision=precision,
            root_delay=root_delay / _FIXED_16_16,
            root_dispersion=root_dispersion / _FIXED_16_16,
            reference_id=reference_id,
            reference_ts=reference_ts,
            originate_ts=originate_ts,
            receive_ts=receive_ts,
            transmit_ts=transmit_ts,
            destination_time=destination_time,
        )

    def encode(self) -> bytes:
        header = (int(self.leap_indicator) << 6) | ((self.version & 0x07) << 3) | (int(self.mode) & 0x07)
        return _WIRE_FORMAT.pack(
            header,
            self.stratum,
            self.poll,
            self.precision,
            int(round(self.root_delay * _FIXED_16_16)),
            int(round(self.root_dispersion * _FIXED_16_16)),
            self.reference_id,
            self.reference_ts,
            self.originate_ts,
            self.receive_ts,
            self.transmit_ts,
        )

    def is_valid(self) -> bool:
        """Server mode, synchronised stratum (1-15) and a non-zero transmit time."""
        return (
            self.mode == Mode.SERVER
            and MIN_STRATUM <= self.stratum <= MAX_STRATUM
            and self.transmit_ts != 0
        )

    @property
    def reference_time(self) -> datetime:
        return timestamp.to_datetime(self.reference_ts)

    @property
    def originate_time(self) -> datetime:
        return timestamp.to_datetime(self.originate_ts)

    @property
    def receive_time(self) -> datetime:
        return timestamp.to_datetime(self.receive_ts)

    @property
    def transmit_time(self) -> datetime:
        return timestamp.to_datetime(self.transmit_ts)

    @property
    def creation_time(self) -> Optional[datetime]:
        return self.destination_time

    @property
    def reference_name(self) -> str:
        """Kiss code / reference clock name for stratum 0-1, IPv4 address above."""
        if self.stratum <= MIN_STRATUM:
            raw = self.reference_id.to_bytes(4, "big")
            return raw.rstrip(b"\x00").decode("ascii", errors="replace")
        return str(ipaddress.IPv4Address(self.reference_id))

    def _destination(self) -> datetime:
        if self.destination_time is None:
            raise ValueError("Packet has no destination timestamp")
        return self.destination_time

    @property
    def round_trip_delay(self) -> timedelta:
        """delay = (T4 - T1) - (T3 - T2)"""
        t4 = self._destination()
        return (t4 - self.originate_time) - (self.transmit_time - self.receive_time)

    @property
    def local_clock_offset(self) -> timedelta:
        """offset = ((T2 - T1) + (T3 - T4)) / 2"""
        t4 = self._destination()
        return ((self.receive_time - self.originate_time) + (self.transmit_time - t4)) / 2

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "leap_indicator": self.leap_indicator.name,
            "version": self.version,
            "mode": self.mode.name,
            "stratum": self.stratum,
            "poll": self.poll,
            "precision": self.precision,
            "root_delay_ms": round(self.root_delay * 1000.0, 3),
            "root_dispersion_ms": round(self.root_dispersion * 1000.0, 3),
            "reference": self.reference_name,
            "reference_time": _iso(self.reference_time),
            "originate_time": _iso(self.originate_time),
            "receive_time": _iso(self.receive_time),
            "transmit_time": _iso(self.transmit_time),
            "destination_time": _iso(self.destination_time),
            "valid": self.is_valid(),
        }
        if self.destination_time is not None:
            payload["offset_ms"] = round(self.local_clock_offset.total_seconds() * 1000.0, 3)
            payload["delay_ms"] = round(self.round_trip_delay.total_seconds() * 1000.0, 3)
        return payload


__all__ = [
    "LeapIndicator",
    "MAX_STRATUM",
    "MIN_STRATUM",
    "Mode",
    "NTP_VERSION",
    "PACKET_SIZE",
    "Packet",
]
