"""Command-line entry point running the intercom gateway.

Loads the TOML configuration, then serves SIP signaling and the HTTP admin
API on one event loop until interrupted.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Optional

import uvicorn
from rich.panel import Panel

from ._admin import create_app
from ._config import GatewayConfig, load_config
from ._device import DeviceRegistry
from ._dialog import DialogHandler
from ._presence import PresencePublisher
from ._server import SIPServer
from ._types import ConfigError, TransportError
from ._utils import configure_logging, console, logger


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="intercomx",
        description="SIP gateway for Hikvision-style intercom door stations",
    )
    parser.add_argument("config", help="Path to the TOML configuration file")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: INFO)",
    )
    return parser


def _print_summary(config: GatewayConfig, registry: DeviceRegistry) -> None:
    lines = [
        f"[bold]SIP[/]: udp/{config.server.host}:{config.server.sip_port}",
        f"[bold]HTTP[/]: {config.server.host}:{config.server.http_port}",
        f"[bold]MQTT[/]: {config.mqtt.broker if config.mqtt else 'disabled'}",
    ]
    for key, device in registry.items():
        lines.append(f"[bold]doorbell.{key}[/]: {device.name} at {device.config.address}")
    console.print(Panel("\n".join(lines), title="Intercom Gateway", border_style="green"))


async def _run(config: GatewayConfig, log_level: str) -> int:
    presence: Optional[PresencePublisher] = None
    if config.mqtt is not None:
        presence = PresencePublisher(config.mqtt)
        presence.start()
        presence.announce_gateway()

    registry = DeviceRegistry.from_config(config, presence=presence)
    for key, device in registry.items():
        logger.info(f"Loaded doorbell.{key} ({device.name}) at {device.config.address}")

    sip = SIPServer(
        DialogHandler(registry, user_agent=config.server.user_agent),
        local_host=config.server.host,
        local_port=config.server.sip_port,
    )
    http = uvicorn.Server(
        uvicorn.Config(
            create_app(registry),
            host=config.server.host,
            port=config.server.http_port,
            log_config=None,
            log_level=log_level.lower(),
        )
    )

    try:
        await sip.start()
    except TransportError as e:
        logger.error(f"Cannot start SIP server: {e}")
        await registry.aclose()
        if presence is not None:
            presence.stop()
        return 1

    _print_summary(config, registry)
    sip_task = asyncio.create_task(sip.serve_forever())
    try:
        # Returns once uvicorn has handled SIGINT/SIGTERM
        await http.serve()
    finally:
        logger.info("Shutting down")
        await sip.stop()
        sip_task.cancel()
        await asyncio.gather(sip_task, return_exceptions=True)
        await registry.aclose()
        if presence is not None:
            presence.stop()
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    configure_logging(args.log_level)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    logger.info(f"Starting up. Loading configuration from {args.config}")
    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.error(str(e))
        return 2

    return asyncio.run(_run(config, args.log_level))


if __name__ == "__main__":
    raise SystemExit(main())
