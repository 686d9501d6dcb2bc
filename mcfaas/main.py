import sys
import signal
import asyncio
import logging

from hypercorn.config import Config
from hypercorn.asyncio import serve

from mcfaas.log import setup_logging
from mcfaas.local.config import effective_settings as config

log = logging.getLogger("console")


def build_server_config() -> Config:
    """
    Hypercorn settings for the control plane.

    A single worker is mandatory: deployments, workers and applications are
    tracked in process memory.
    """
    server_config = Config()
    server_config.bind = [f"{config.WEB_SERVER_HOST}:{config.WEB_SERVER_PORT}"]
    server_config.workers = 1
    # Directs Hypercorn's own logs to stdout/stderr.
    server_config.accesslog = "-"
    server_config.errorlog = "-"
    return server_config


def main() -> None:
    """The main entry point: serve the control plane until interrupted."""
    # Building the app configures logging at INFO.
    from mcfaas.web.setup import app

    if "--verbose" in sys.argv[1:]:
        setup_logging(logging.DEBUG)

    async def _run() -> None:
        shutdown_event = asyncio.Event()

        def _signal_handler() -> None:
            log.info("Shutdown signal received. Stopping control plane...")
            shutdown_event.set()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _signal_handler)
        log.info("=" * 20 + " Control Plane Starting " + "=" * 20)
        await serve(app, build_server_config(), shutdown_trigger=shutdown_event.wait)

    asyncio.run(_run())
    log.info("Control plane stopped.")


if __name__ == "__main__":
    main()
