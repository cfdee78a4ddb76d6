"""Stateful NTP observer: cached result, TTL, retrying background refresh."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import replace
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    stop_when_event_set,
    wait_fixed,
)

from cubeclock import system_clock

from .client import DEFAULT_TIMEOUT_S, NTP_PORT, NtpClient, validate_timeout
from .errors import InvalidServerResponseError, NtpError
from .packet import Packet
from .timestamp import utcnow
from .worker import BackgroundWorker

if TYPE_CHECKING:
    from cubeclock.config.settings import Settings

LOGGER = logging.getLogger(__name__)

DEFAULT_TTL_S = 3600.0
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_INTERVAL_S = 5.0
_JOIN_GRACE_S = 1.0


class ObserverState(str, Enum):
    EMPTY = "empty"
    FRESH = "fresh"
    STALE = "stale"


class Observer:
    """Watch the offset between the local clock and one NTP server.

    Reads of :attr:`local_clock_offset` and :attr:`is_valid` never block: when
    the cached result is missing or older than ``ttl_s`` they start a
    background refresh (one at a time) and return what is cached right now,
    so callers may briefly observe stale data.
    """

    def __init__(
        self,
        client: Optional[NtpClient] = None,
        *,
        ttl_s: float = DEFAULT_TTL_S,
        retry_attempts: int = DEFAULT_RETRY_ATTEMPTS,
        retry_interval_s: float = DEFAULT_RETRY_INTERVAL_S,
        adjust: Optional[Callable[[timedelta], None]] = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Any] = time.sleep,
    ) -> None:
        self._client = client if client is not None else NtpClient()
        self._ttl_s = float(ttl_s)
        self.retry_attempts = int(retry_attempts)
        self.retry_interval_s = float(retry_interval_s)
        self._adjust = adjust if adjust is not None else system_clock.adjust
        self._clock = clock
        self._sleep = sleep

        self._lock = threading.RLock()
        self._last: Optional[Packet] = None
        self._failed_count = 0
        # Bumped whenever cached state is discarded; refreshes that started
        # under an older generation must not publish.
        self._generation = 0
        self._closed = False
        self._worker = BackgroundWorker(self._run_background, name="ntp-observer")

    @classmethod
    def for_server(
        cls,
        host: str,
        port: int = NTP_PORT,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        **kwargs: Any,
    ) -> "Observer":
        return cls(NtpClient(host=host, port=port, timeout_s=timeout_s), **kwargs)

    @classmethod
    def from_settings(cls, settings: "Settings", **kwargs: Any) -> "Observer":
        client = NtpClient(
            host=settings.server.host,
            port=settings.server.port,
            timeout_s=settings.server.timeout_s,
            version=settings.server.version,
        )
        return cls(
            client,
            ttl_s=settings.observer.ttl_s,
            retry_attempts=settings.observer.retry_attempts,
            retry_interval_s=settings.observer.retry_interval_s,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def client(self) -> NtpClient:
        return self._client

    @property
    def timeout_s(self) -> float:
        return self._client.timeout_s

    @timeout_s.setter
    def timeout_s(self, value: float) -> None:
        timeout = validate_timeout(value)
        with self._lock:
            self._client.timeout_s = timeout

    @property
    def ttl_s(self) -> float:
        return self._ttl_s

    @ttl_s.setter
    def ttl_s(self, value: float) -> None:
        self._ttl_s = float(value)

    @property
    def last_result(self) -> Optional[Packet]:
        return self._last

    @property
    def failed_count(self) -> int:
        return self._failed_count

    @property
    def state(self) -> ObserverState:
        return self._state_of(self._last)

    @property
    def is_busy(self) -> bool:
        """True while a background refresh is running."""
        return self._worker.is_busy

    @property
    def is_valid(self) -> bool:
        packet = self._last
        fresh = self._is_fresh(packet)
        if not fresh:
            self._trigger_refresh()
        return fresh

    @property
    def local_clock_offset(self) -> timedelta:
        packet = self._last
        if not self._is_fresh(packet):
            self._trigger_refresh()
        return packet.local_clock_offset if packet is not None else timedelta(0)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------
    def refresh(self, max_retry: int = 0, interval_s: float = 0.0) -> Packet:
        """Query the server now, retrying up to ``max_retry`` times.

        Blocking: the calling thread is occupied for every attempt plus
        ``interval_s`` between attempts, i.e. at least
        ``max_retry * interval_s`` against a server that keeps failing. The
        last error propagates once attempts are exhausted.
        """
        retrying = self._retrying(max_retry, interval_s, sleep=self._sleep)
        return retrying(self._attempt)

    def reset(self, client: Optional[NtpClient] = None) -> None:
        """Stop background work, optionally swap the client and drop cached state."""
        self._worker.cancel(timeout=self._join_timeout())
        with self._lock:
            if client is not None:
                self._client = client
            self._last = None
            self._failed_count = 0
            self._generation += 1
            address = self._client.address
        LOGGER.info("Observer reset; server is %s", address)

    def reset_server(self, host: str, port: int = NTP_PORT) -> None:
        """Switch to another server keeping the current timeout and protocol version."""
        self.reset(replace(self._client, host=host, port=port))

    def synchronize(self) -> timedelta:
        """Step the host clock by the measured offset and return that offset."""
        with self._lock:
            packet = self._last
            if not self._is_fresh(packet):
                packet = self.refresh(DEFAULT_RETRY_ATTEMPTS, DEFAULT_RETRY_INTERVAL_S)
            offset = packet.local_clock_offset
            LOGGER.info(
                "Adjusting system clock by %+.3fms (server %s)",
                offset.total_seconds() * 1000.0,
                self._client.address,
            )
            self._adjust(offset)
            # The measurement is now baked into the local clock.
            self._last = None
            self._generation += 1
        return offset

    def close(self) -> None:
        """Cancel and join the background worker; a reply still in flight is dropped."""
        with self._lock:
            self._closed = True
            self._generation += 1
        self._worker.cancel(timeout=self._join_timeout())

    def __enter__(self) -> "Observer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _state_of(self, packet: Optional[Packet]) -> ObserverState:
        if packet is None or packet.creation_time is None:
            return ObserverState.EMPTY
        age = self._clock() - packet.creation_time
        if age <= timedelta(seconds=self._ttl_s):
            return ObserverState.FRESH
        return ObserverState.STALE

    def _is_fresh(self, packet: Optional[Packet]) -> bool:
        return packet is not None and packet.is_valid() and self._state_of(packet) is ObserverState.FRESH

    def _join_timeout(self) -> float:
        return self._client.timeout_s + _JOIN_GRACE_S

    def _trigger_refresh(self) -> None:
        if self._closed:
            return
        if self._worker.start():
            LOGGER.debug("Started background refresh against %s", self._client.address)

    def _run_background(self, cancel: threading.Event) -> None:
        retrying = self._retrying(
            self.retry_attempts,
            self.retry_interval_s,
            sleep=cancel.wait,
            cancel=cancel,
        )
        try:
            for attempt in retrying:
                with attempt:
                    if cancel.is_set():
                        LOGGER.debug(
                            "Background refresh cancelled before attempt %d",
                            attempt.retry_state.attempt_number,
                        )
                        return
                    self._attempt()
        except NtpError as exc:
            LOGGER.error("Background refresh gave up after %d failures: %s", self._failed_count, exc)

    def _retrying(
        self,
        max_retry: int,
        interval_s: float,
        *,
        sleep: Callable[[float], Any],
        cancel: Optional[threading.Event] = None,
    ) -> Retrying:
        stop = stop_after_attempt(max(0, int(max_retry)) + 1)
        if cancel is not None:
            stop = stop | stop_when_event_set(cancel)
        return Retrying(
            stop=stop,
            wait=wait_fixed(max(0.0, float(interval_s))),
            retry=retry_if_exception_type(NtpError),
            sleep=sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )

    def _attempt(self) -> Packet:
        with self._lock:
            client = self._client
            generation = self._generation
        try:
            packet = client.receive()
            if not packet.is_valid():
                raise InvalidServerResponseError(
                    f"Unusable reply from {client.address}: "
                    f"mode={packet.mode.name} stratum={packet.stratum}",
                    packet,
                )
        except NtpError:
            with self._lock:
                if generation == self._generation:
                    self._failed_count += 1
            raise

        with self._lock:
            if generation != self._generation:
                LOGGER.info("Discarding reply from %s; observer state was reset meanwhile", client.address)
                return packet
            self._last = packet
        LOGGER.info(
            "NTP offset from %s: %+.3fms (delay %.3fms, stratum %d)",
            client.address,
            packet.local_clock_offset.total_seconds() * 1000.0,
            packet.round_trip_delay.total_seconds() * 1000.0,
            packet.stratum,
        )
        return packet

    def _log_retry(self, retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        error = outcome.exception() if outcome is not None else None
        delay = retry_state.next_action.sleep if retry_state.next_action is not None else 0.0
        LOGGER.warning(
            "NTP attempt %d against %s failed: %s; retrying in %.1fs",
            retry_state.attempt_number,
            self._client.address,
            error,
            delay,
        )


__all__ = [
    "DEFAULT_RETRY_ATTEMPTS",
    "DEFAULT_RETRY_INTERVAL_S",
    "DEFAULT_TTL_S",
    "Observer",
    "ObserverState",
]
