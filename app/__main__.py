"""Scripting entry point: query, watch and synchronise against an NTP server."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Dict

from dotenv import load_dotenv

from cubeclock.config.settings import Settings, load_settings, validate
from cubeclock.ntp import NtpClient, Observer

from . import settings
from .monitor import query_once, synchronize, watch_loop

load_dotenv()

LOGGER = logging.getLogger(__name__)


def _configure_logging(config: Settings) -> None:
    settings.setup_logging(level=config.logging.level, log_file=config.logging.file)


def _print_json(payload: Dict[str, object]) -> None:
    json.dump(payload, sys.stdout, indent=2, sort_keys=True, default=str)
    sys.stdout.write("\n")


def _apply_overrides(config: Settings, args: argparse.Namespace) -> Settings:
    if args.host is not None:
        config.server.host = args.host
    if args.port is not None:
        config.server.port = args.port
    if args.timeout is not None:
        config.server.timeout_s = args.timeout
    return validate(config)


def _run_query(config: Settings) -> Dict[str, object]:
    client = NtpClient(
        host=config.server.host,
        port=config.server.port,
        timeout_s=config.server.timeout_s,
        version=config.server.version,
    )
    return query_once(client)


def _run_watch(config: Settings, cycles: int | None) -> None:
    with Observer.from_settings(config) as observer:
        watch_loop(
            observer,
            tick_s=config.monitor.tick_s,
            cycles=cycles,
            threshold_s=config.monitor.drift_threshold_s,
            emit=_print_json,
        )


def _run_sync(config: Settings) -> Dict[str, object]:
    with Observer.from_settings(config) as observer:
        return synchronize(observer)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="python -m app")
    parser.add_argument("--config", default=None, help="YAML/JSON settings file")
    parser.add_argument("--host", default=None)
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--timeout", type=float, default=None)
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("query")
    subparsers.add_parser("sync")
    watch_parser = subparsers.add_parser("watch")
    watch_parser.add_argument("--cycles", type=int, default=0, help="0 runs until interrupted")

    args = parser.parse_args(argv)

    try:
        config = _apply_overrides(load_settings(args.config), args)
        _configure_logging(config)
        if args.command == "query":
            _print_json(_run_query(config))
        elif args.command == "sync":
            _print_json(_run_sync(config))
        elif args.command == "watch":
            cycles = args.cycles if args.cycles and args.cycles > 0 else None
            _run_watch(config, cycles)
        else:  # pragma: no cover
            parser.error(f"Unknown command {args.command}")
    except KeyboardInterrupt:
        return 130
    except Exception as exc:  # noqa: BLE001 - report any failure as exit status
        LOGGER.exception("Command failed: %s", exc)
        sys.stderr.write(f"Error: {exc}\n")
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
