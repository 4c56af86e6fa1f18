"""
OE Doom Launcher: daemon entry point.

Loads the configuration, starts zeroconf discovery and the coordinator, and
optionally serves the read-only status API.
"""

import argparse
import asyncio
import contextlib
import logging
import signal
import sys

import uvicorn
from fastapi import FastAPI

from api.routes import init_routes, router
from config import DEFAULT_CONFIG_PATH, LauncherConfig, load_config, machine_id
from discovery.service import ZeroconfDiscovery
from errors import LauncherError
from session.coordinator import Coordinator
from session.events import ConnectivityLost, ShutdownRequested

logger = logging.getLogger(__name__)

app = FastAPI(title="OE Doom Launcher", version="1.0.0")
app.include_router(router)


class StatusServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the launcher."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self):
        yield


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="OpenEmbedded ZDoom Demo Launcher")
    parser.add_argument(
        "-c", "--config",
        default=None,
        help=f"Config file path (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args(argv)


async def serve(config: LauncherConfig) -> int:
    """Run the launcher until shutdown. Returns the process exit status."""
    discovery = ZeroconfDiscovery()
    coordinator = Coordinator(config, discovery, name=machine_id())
    discovery.attach(coordinator.post, coordinator.owns_name)
    init_routes(coordinator)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, coordinator.post, ShutdownRequested(reason=sig.name))

    status_server: StatusServer | None = None
    status_task: asyncio.Task | None = None
    exit_code = 0

    try:
        await discovery.start()

        if config.status_port:
            status_server = StatusServer(
                uvicorn.Config(
                    app,
                    host=config.status_host,
                    port=config.status_port,
                    log_level="info",
                )
            )
            status_task = asyncio.create_task(status_server.serve())
            logger.info(f"Status API on {config.status_host}:{config.status_port}")

        stop_event = await coordinator.run()
        if isinstance(stop_event, ConnectivityLost):
            exit_code = 1

    except LauncherError as e:
        logger.critical(f"Launcher failed: {e}")
        exit_code = 1
    finally:
        await coordinator.shutdown()
        await discovery.stop()
        if status_server and status_task:
            status_server.should_exit = True
            await status_task
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)

    return exit_code


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        if args.config is None:
            config = load_config(DEFAULT_CONFIG_PATH, explicit=False)
        else:
            config = load_config(args.config, explicit=True)
    except LauncherError as e:
        logger.error(f"Unable to start: {e}")
        return 1

    return asyncio.run(serve(config))


if __name__ == "__main__":
    sys.exit(main())
