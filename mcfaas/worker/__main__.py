"""
This is a minimal entry point script for a worker process.

Its sole responsibility is to attach to the inherited IPC descriptor and run
the worker loop in the current directory, which the supervisor sets to the
deployment's source path.
"""
import setproctitle
setproctitle.setproctitle("MCFaaS - Worker")

import sys
import signal
import logging
import argparse
from pathlib import Path

from mcfaas.ipc import IpcChannel
from mcfaas.worker.runtime import run_worker

# Worker output is captured by the supervisor, which adds pid/deployment tags.
logging.basicConfig(
    level=logging.INFO,
    format='%(levelname)-8s - [%(name)s] - %(message)s',
    stream=sys.stdout
)
log = logging.getLogger("worker")


def handle_shutdown_signal(signum, frame):
    """Handle shutdown signals gracefully."""
    log.info(f"Signal {signum} received, shutting down worker.")
    sys.exit(0)


def main() -> int:
    parser = argparse.ArgumentParser(prog="mcfaas.worker")
    parser.add_argument("--ipc-fd", type=int, required=True, help="Inherited IPC socket descriptor.")
    args = parser.parse_args()

    signal.signal(signal.SIGTERM, handle_shutdown_signal)
    channel = IpcChannel.from_fd(args.ipc_fd, name="worker")
    try:
        return run_worker(channel, Path.cwd())
    finally:
        channel.close()


if __name__ == "__main__":
    sys.exit(main())
