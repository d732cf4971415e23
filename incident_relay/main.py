"""
Main entry point: bootstraps the relay.

Loads configuration, opens one shared aiohttp session for the status page
client and the DingTalk notifier, runs the RelayService loop, and serves a
minimal health-check endpoint. Handles graceful shutdown on SIGINT/SIGTERM.

Usage:
    python -m incident_relay [-c config.yaml]
    incident-relay [-c config.yaml]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

import aiohttp
from aiohttp import web

from incident_relay import __version__
from incident_relay.config import load_config
from incident_relay.errors import ConfigInvalid
from incident_relay.formatter import Formatter
from incident_relay.models import Config
from incident_relay.monitor import StatusPageClient
from incident_relay.notifier import DingTalkNotifier
from incident_relay.scheduler import RelayService

log = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)-7s %(name)s: %(message)s"


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=_LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def build_health_app(service: RelayService, page_name: str) -> web.Application:
    """Health-check app for hosted deployments."""

    async def index(_: web.Request) -> web.Response:
        return web.json_response({
            "status": "running",
            "message": f"{page_name} incident relay is active",
            "tracked_incidents": len(service.store),
            "last_daily_report": (
                service.last_report_at.isoformat() if service.last_report_at else None
            ),
        })

    async def health(_: web.Request) -> web.Response:
        return web.json_response({"status": "healthy"})

    app = web.Application()
    app.router.add_get("/", index)
    app.router.add_get("/health", health)
    return app


def _handle_signals(task: asyncio.Task, loop: asyncio.AbstractEventLoop) -> None:
    """Register signal handlers for graceful shutdown."""
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, task.cancel)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass


async def async_main(config: Config) -> None:
    """Async entry point."""
    async with aiohttp.ClientSession() as session:
        client = StatusPageClient(config.status_page, session)
        notifier = DingTalkNotifier(config.webhook, session)
        service = RelayService(
            config.settings,
            fetch=client.fetch,
            send=notifier.send,
            formatter=Formatter(config.status_page.name, config.status_page.url),
        )

        runner: Optional[web.AppRunner] = None
        if config.settings.health_port:
            runner = web.AppRunner(build_health_app(service, config.status_page.name))
            await runner.setup()
            site = web.TCPSite(runner, "0.0.0.0", config.settings.health_port)
            await site.start()
            log.info("Health check listening on port %d", config.settings.health_port)

        task = asyncio.create_task(service.run(), name="relay")
        _handle_signals(task, asyncio.get_running_loop())
        try:
            await task
        except asyncio.CancelledError:
            log.info("Relay stopped")
        finally:
            if runner is not None:
                await runner.cleanup()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="incident-relay",
        description="Relay status page incidents to a DingTalk robot.",
    )
    parser.add_argument("-c", "--config", default=None, help="path to config.yaml")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    """Sync entry point."""
    args = parse_args(argv)
    setup_logging("INFO")
    try:
        config = load_config(args.config)
    except ConfigInvalid as exc:
        log.error("Invalid configuration: %s", exc)
        sys.exit(1)

    logging.getLogger().setLevel(getattr(logging, config.settings.log_level, logging.INFO))
    log.info("Starting incident relay %s for %s", __version__, config.status_page.name)

    try:
        asyncio.run(async_main(config))
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    main()
