"""Step the host wall clock by a measured offset."""
from __future__ import annotations

import logging
import time
from datetime import timedelta

LOGGER = logging.getLogger(__name__)


class SystemClockError(RuntimeError):
    """Raised when the operating system refuses or cannot set the clock."""


def adjust(offset: timedelta) -> None:
    """Move ``CLOCK_REALTIME`` forward (or back) by ``offset``.

    Requires ``time.clock_settime`` (Unix) and usually root privileges.
    """
    if not hasattr(time, "clock_settime"):
        raise SystemClockError("Setting the system clock is not supported on this platform")

    target = time.clock_gettime(time.CLOCK_REALTIME) + offset.total_seconds()
    try:
        time.clock_settime(time.CLOCK_REALTIME, target)
    except PermissionError as exc:
        raise SystemClockError("Permission denied setting the system clock (root required)") from exc
    except OSError as exc:
        raise SystemClockError(f"Unable to set the system clock: {exc}") from exc
    LOGGER.info("System clock stepped by %+.3fs", offset.total_seconds())


__all__ = ["SystemClockError", "adjust"]
