"""
talk2ai-server: runs the HTTP backend until it exits or a shutdown signal arrives.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys
from typing import Any

import click

from talk2ai import __version__
from talk2ai.chat.logging_utils import configure_logging
from talk2ai.config import Configuration
from talk2ai.server import run_server

logger = logging.getLogger(__name__)


def build_overrides(host: str | None, port: int | None, stream_protocol: str | None) -> dict[str, Any]:
    """Command line values as a configuration override tree."""
    server: dict[str, Any] = {}
    if host:
        server["host"] = host
    if port:
        server["port"] = port

    chat: dict[str, Any] = {}
    if server:
        chat["server"] = server
    if stream_protocol:
        chat["stream_protocol"] = stream_protocol
    return {"chat": chat} if chat else {}


async def serve(config: Configuration) -> None:
    """Run the server task; SIGINT/SIGTERM stop it and release provider clients."""
    stop = asyncio.Event()

    if sys.platform != "win32":
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop.set)

    server_task = asyncio.create_task(run_server(config), name="talk2ai-server")
    stop_task = asyncio.create_task(stop.wait(), name="talk2ai-shutdown")

    try:
        await asyncio.wait({server_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        if stop.is_set():
            logger.info("Shutdown signal received")
    finally:
        for task in (server_task, stop_task):
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        logger.info("talk2ai server stopped")

    # surface a crash of the server itself
    if server_task.done() and not server_task.cancelled():
        server_task.result()


@click.command()
@click.version_option(version=__version__, prog_name="talk2ai-server")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), help="Base config.yaml")
@click.option(
    "--runtime-config",
    "runtime_config_path",
    type=click.Path(dir_okay=False),
    help="Overrides merged over the base config",
)
@click.option("--host", default=None, help="Bind address")
@click.option("--port", type=int, default=None, help="Bind port")
@click.option("--stream-protocol", type=click.Choice(["ui", "text"]), default=None, help="Chat response framing")
def cli_main(
    config_path: str | None,
    runtime_config_path: str | None,
    host: str | None,
    port: int | None,
    stream_protocol: str | None,
) -> None:
    """Start the talk2ai voice chat backend."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

    config = Configuration(
        config_path=config_path,
        runtime_config_path=runtime_config_path,
        overrides=build_overrides(host, port, stream_protocol),
    )
    configure_logging(config.get_logging_config())

    try:
        asyncio.run(serve(config))
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    cli_main()
