"""Command line entry point: ``cloudbbq-homie`` / ``python -m cloudbbq_homie``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from cloudbbq_homie import __version__
from cloudbbq_homie._constants import CONFIG_ENV_VAR, CONFIG_FILENAME, SCAN_DURATION_SECONDS
from cloudbbq_homie._redact import redact_for_log
from cloudbbq_homie.config import BridgeConfig
from cloudbbq_homie.exceptions import BbqError
from cloudbbq_homie.fleet import FleetCoordinator

_logger = logging.getLogger(__name__)

EXIT_INTERRUPTED = 130


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="cloudbbq-homie",
        description="Publish iBBQ Bluetooth thermometers as Homie devices over MQTT.",
    )
    parser.add_argument(
        "--config",
        help=f"Configuration file (default: ${CONFIG_ENV_VAR} or ./{CONFIG_FILENAME}).",
    )
    parser.add_argument(
        "--scan-seconds",
        type=float,
        default=SCAN_DURATION_SECONDS,
        help="How long to scan for thermometers before connecting.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


async def _run(config: BridgeConfig, scan_seconds: float) -> None:
    await FleetCoordinator(config, scan_duration=scan_seconds).run()


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = BridgeConfig.from_file(args.config)
        _logger.debug("Configuration: %s", redact_for_log(config.model_dump(by_alias=True)))
        asyncio.run(_run(config, args.scan_seconds))
    except BbqError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
