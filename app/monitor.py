"""Clock-offset monitoring loop driven by an :class:`Observer`."""
from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from cubeclock.ntp import NtpClient, Observer

LOGGER = logging.getLogger(__name__)

Emitter = Callable[[Dict[str, object]], None]


def _sleep_until(target_wall_time: float) -> None:
    remaining = target_wall_time - time.time()
    if remaining <= 0:
        return

    target_monotonic = time.monotonic() + remaining
    while True:
        remaining = target_monotonic - time.monotonic()
        if remaining <= 0:
            break
        time.sleep(min(remaining, 0.5))


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone().isoformat()


def _ms(value: timedelta) -> float:
    return round(value.total_seconds() * 1000.0, 3)


def _print_json(payload: Dict[str, object]) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True, default=str))


def drift_message(offset: timedelta, threshold_s: float) -> Optional[str]:
    """Describe the local clock error once it exceeds ``threshold_s`` seconds."""
    seconds = abs(offset.total_seconds())
    if seconds <= threshold_s:
        return None
    direction = "fast" if offset <= timedelta(0) else "behind"
    return f"Local clock is {int(seconds)} seconds {direction}"


def query_once(client: NtpClient) -> Dict[str, object]:
    """Run one exchange against ``client`` and summarise the reply."""
    packet = client.receive()
    payload: Dict[str, object] = {"server": client.address}
    payload.update(packet.as_dict())
    return payload


def sample(observer: Observer, threshold_s: float = 5.0) -> Dict[str, object]:
    """Read the observer the way a UI timer tick would."""
    local = datetime.now(timezone.utc)
    offset = observer.local_clock_offset
    payload: Dict[str, object] = {
        "local": _to_iso(local),
        "server": _to_iso(local + offset),
        "offset_ms": _ms(offset),
        "valid": observer.is_valid,
        "state": observer.state.value,
        "failed_count": observer.failed_count,
    }
    warning = drift_message(offset, threshold_s)
    if warning:
        payload["warning"] = warning
    return payload


def watch_loop(
    observer: Observer,
    tick_s: float = 1.0,
    cycles: Optional[int] = None,
    *,
    threshold_s: float = 5.0,
    emit: Optional[Emitter] = None,
) -> int:
    """Sample the observer every ``tick_s`` seconds; returns the number of samples."""
    if tick_s <= 0:
        raise ValueError("tick_s must be greater than zero")
    emit = emit or _print_json
    executed = 0
    drifting = False
    next_run = time.time()

    while cycles is None or executed < cycles:
        _sleep_until(next_run)
        payload = sample(observer, threshold_s)

        warning = payload.get("warning")
        if warning and not drifting:
            LOGGER.warning("%s (server %s)", warning, observer.client.address)
        elif drifting and not warning:
            LOGGER.info("Local clock back within %.1fs of %s", threshold_s, observer.client.address)
        drifting = bool(warning)

        emit(payload)
        executed += 1
        if cycles is not None and executed >= cycles:
            break

        next_run += tick_s
        while next_run <= time.time():
            next_run += tick_s
    return executed


def synchronize(observer: Observer) -> Dict[str, object]:
    """Step the host clock using ``observer`` and report what was applied."""
    offset = observer.synchronize()
    return {
        "server": observer.client.address,
        "applied_offset_ms": _ms(offset),
        "synchronized_at": _to_iso(datetime.now(timezone.utc)),
    }


__all__ = ["drift_message", "query_once", "sample", "synchronize", "watch_loop"]
