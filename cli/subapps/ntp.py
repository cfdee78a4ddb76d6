from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Optional

import typer
from rich.table import Table

from app.monitor import query_once, synchronize, watch_loop
from cubeclock.config.settings import ConfigurationError, Settings, load_settings, validate
from cubeclock.ntp import NtpClient, NtpError, Observer
from cubeclock.system_clock import SystemClockError

from ..common import console, format_ms

ntp_app = typer.Typer(help="NTP query, monitoring and clock synchronisation")

_HOST_HELP = "NTP server host name or IP address"
_MIN_TIMEOUT_S = 0.001


def _load(
    config: Optional[Path],
    host: Optional[str],
    port: Optional[int],
    timeout: Optional[float],
) -> Settings:
    try:
        settings = load_settings(config)
        if host is not None:
            settings.server.host = host
        if port is not None:
            settings.server.port = port
        if timeout is not None:
            settings.server.timeout_s = timeout
        return validate(settings)
    except ConfigurationError as exc:
        console().print(f"[red]Configuration error:[/] {exc}")
        raise typer.Exit(code=2) from exc


def _client(settings: Settings) -> NtpClient:
    return NtpClient(
        host=settings.server.host,
        port=settings.server.port,
        timeout_s=settings.server.timeout_s,
        version=settings.server.version,
    )


def _table(title: str, payload: Dict[str, object]) -> Table:
    table = Table(title=title)
    table.add_column("Field")
    table.add_column("Value")
    for key, value in payload.items():
        table.add_row(str(key), json.dumps(value, default=str))
    return table


def _render_sample(payload: Dict[str, object]) -> None:
    status = "[green]valid[/]" if payload.get("valid") else f"[yellow]{payload.get('state')}[/]"
    line = (
        f"{payload.get('local')}  server {payload.get('server')}  "
        f"offset {format_ms(payload.get('offset_ms'))}  {status}  "
        f"failures {payload.get('failed_count')}"
    )
    console().print(line)
    warning = payload.get("warning")
    if warning:
        console().print(f"[bold red]{warning}[/]")


@ntp_app.command("query")
def query(
    host: Optional[str] = typer.Option(None, help=_HOST_HELP),
    port: Optional[int] = typer.Option(None, min=1, max=65535),
    timeout: Optional[float] = typer.Option(None, min=_MIN_TIMEOUT_S, help="Receive timeout in seconds"),
    config: Optional[Path] = typer.Option(None, help="YAML/JSON settings file"),
    as_json: bool = typer.Option(False, "--json", help="Print raw JSON"),
) -> None:
    """Send one request and show the decoded reply."""
    settings = _load(config, host, port, timeout)
    client = _client(settings)
    try:
        payload = query_once(client)
    except NtpError as exc:
        console().print(f"[red]Query failed:[/] {exc}")
        raise typer.Exit(code=1) from exc
    if as_json:
        typer.echo(json.dumps(payload, indent=2, default=str))
        return
    console().print(_table(f"NTP reply from {client.address}", payload))


@ntp_app.command("watch")
def watch(
    cycles: int = typer.Option(0, min=0, help="Number of samples, 0 runs until interrupted"),
    tick: Optional[float] = typer.Option(None, help="Seconds between samples"),
    threshold: Optional[float] = typer.Option(None, help="Drift warning threshold in seconds"),
    host: Optional[str] = typer.Option(None, help=_HOST_HELP),
    port: Optional[int] = typer.Option(None, min=1, max=65535),
    timeout: Optional[float] = typer.Option(None, min=_MIN_TIMEOUT_S, help="Receive timeout in seconds"),
    config: Optional[Path] = typer.Option(None, help="YAML/JSON settings file"),
) -> None:
    """Show local and server time side by side, refreshing in the background."""
    settings = _load(config, host, port, timeout)
    tick_s = tick if tick else settings.monitor.tick_s
    threshold_s = threshold if threshold is not None else settings.monitor.drift_threshold_s
    with Observer.from_settings(settings) as observer:
        console().print(f"Watching {observer.client.address} (TTL {observer.ttl_s:.0f}s)")
        try:
            watch_loop(
                observer,
                tick_s=tick_s,
                cycles=cycles or None,
                threshold_s=threshold_s,
                emit=_render_sample,
            )
        except KeyboardInterrupt:
            console().print("Stopped")


@ntp_app.command("sync")
def sync(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    host: Optional[str] = typer.Option(None, help=_HOST_HELP),
    port: Optional[int] = typer.Option(None, min=1, max=65535),
    timeout: Optional[float] = typer.Option(None, min=_MIN_TIMEOUT_S, help="Receive timeout in seconds"),
    config: Optional[Path] = typer.Option(None, help="YAML/JSON settings file"),
) -> None:
    """Step the system clock by the offset measured against the server."""
    settings = _load(config, host, port, timeout)
    address = f"{settings.server.host}:{settings.server.port}"
    if not yes:
        typer.confirm(f"Set the system clock from {address}?", abort=True)
    with Observer.from_settings(settings) as observer:
        try:
            payload = synchronize(observer)
        except (NtpError, SystemClockError) as exc:
            console().print(f"[red]Synchronisation failed:[/] {exc}")
            raise typer.Exit(code=1) from exc
    console().print(_table("Clock synchronised", payload))


@ntp_app.command("status")
def status(
    config: Optional[Path] = typer.Option(None, help="YAML/JSON settings file"),
) -> None:
    """Print the resolved settings."""
    settings = _load(config, None, None, None)
    payload: Dict[str, object] = {
        "source": str(settings.source) if settings.source else "defaults",
        "server": f"{settings.server.host}:{settings.server.port}",
        "timeout_s": settings.server.timeout_s,
        "version": settings.server.version,
        "ttl_s": settings.observer.ttl_s,
        "retry_attempts": settings.observer.retry_attempts,
        "retry_interval_s": settings.observer.retry_interval_s,
        "tick_s": settings.monitor.tick_s,
        "drift_threshold_s": settings.monitor.drift_threshold_s,
    }
    console().print(_table("CubeClock settings", payload))
