"""Shared pytest configuration and fixtures for CubeClock."""

from __future__ import annotations

import logging
import socket
import threading
from datetime import timedelta
from pathlib import Path
from typing import Dict, Generator, Iterable

import pytest

from cubeclock.ntp.packet import Mode, Packet
from cubeclock.ntp.timestamp import from_datetime, utcnow

LOGS_ROOT = Path(__file__).resolve().parents[1] / "logs" / "tests"
SESSION_LOG = LOGS_ROOT / "pytest.session.log"
_MODULE_HANDLERS: Dict[str, logging.Handler] = {}


def _initialise_logging() -> None:
    LOGS_ROOT.mkdir(parents=True, exist_ok=True)
    (LOGS_ROOT / ".gitkeep").touch(exist_ok=True)

    handler = logging.FileHandler(SESSION_LOG, mode="w", encoding="utf-8")
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(logging.INFO)
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)


def get_test_logger(module_name: str) -> logging.Logger:
    """Return a logger writing into ``logs/tests/<module>.log``."""
    normalised = module_name.replace("tests.", "")
    logger = logging.getLogger(f"tests.{normalised}")
    logger.setLevel(logging.INFO)
    if normalised not in _MODULE_HANDLERS:
        LOGS_ROOT.mkdir(parents=True, exist_ok=True)
        log_path = LOGS_ROOT / f"{normalised}.log"
        handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
        logger.addHandler(handler)
        _MODULE_HANDLERS[normalised] = handler
    return logger


@pytest.hookimpl(tryfirst=True)
def pytest_configure(config: pytest.Config) -> None:  # noqa: D401 - pytest hook
    _initialise_logging()


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item: pytest.Item, call: pytest.CallInfo[None]) -> Iterable[pytest.TestReport]:
    outcome = yield
    report = outcome.get_result()
    if report.outcome != "failed":
        return
    module = getattr(item, "module", None)
    module_name = getattr(module, "__name__", "tests")
    target = LOGS_ROOT / f"{module_name.split('.')[-1]}.log"
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("a", encoding="utf-8") as handle:
        handle.write("\n=== TEST FAILURE ===\n")
        handle.write(f"nodeid: {item.nodeid}\n")
        handle.write(f"phase: {report.when}\n")
        handle.write(str(report.longrepr))
        handle.write("\n")


class LoopbackNtpServer:
    """Minimal SNTP responder on 127.0.0.1 driven by a background thread.

    ``mode`` selects the behaviour: ``"normal"`` answers with the clock
    shifted by ``offset``, ``"silent"`` never answers and ``"short"`` sends a
    truncated datagram.
    """

    def __init__(self) -> None:
        self.mode = "normal"
        self.offset = timedelta(0)
        self.stratum = 2
        self.requests = 0
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self._sock.bind(("127.0.0.1", 0))
        self._sock.settimeout(0.05)
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._serve, name="fake-ntp-server", daemon=True)

    @property
    def host(self) -> str:
        return "127.0.0.1"

    @property
    def port(self) -> int:
        return self._sock.getsockname()[1]

    def start(self) -> "LoopbackNtpServer":
        self._thread.start()
        return self

    def stop(self) -> None:
        self._stop.set()
        self._thread.join(timeout=2.0)
        self._sock.close()

    def _reply(self, data: bytes) -> bytes:
        request = Packet.decode(data, utcnow())
        served = from_datetime(utcnow() + self.offset)
        reply = Packet(
            version=request.version,
            mode=Mode.SERVER,
            stratum=self.stratum,
            poll=request.poll,
            precision=-20,
            root_delay=0.0,
            root_dispersion=0.001,
            reference_id=0x7F00_0001,
            reference_ts=served,
            originate_ts=request.transmit_ts,
            receive_ts=served,
            transmit_ts=served,
        )
        return reply.encode()

    def _serve(self) -> None:
        while not self._stop.is_set():
            try:
                data, peer = self._sock.recvfrom(1024)
            except socket.timeout:
                continue
            except OSError:
                break
            self.requests += 1
            if self.mode == "silent":
                continue
            if self.mode == "short":
                self._sock.sendto(data[:20], peer)
                continue
            self._sock.sendto(self._reply(data), peer)


@pytest.fixture
def fake_ntp_server() -> Generator[LoopbackNtpServer, None, None]:
    server = LoopbackNtpServer().start()
    try:
        yield server
    finally:
        server.stop()


@pytest.fixture(autouse=True)
def clear_cubeclock_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in ("CUBECLOCK_CONFIG", "CUBECLOCK_HOST"):
        monkeypatch.delenv(key, raising=False)


__all__ = [
    "LoopbackNtpServer",
    "get_test_logger",
]
