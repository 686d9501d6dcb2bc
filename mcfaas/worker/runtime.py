import sys
import logging
from pathlib import Path

from mcfaas.ipc import ErrorMessage, IpcChannel, LoadMessage, MetadataMessage
from mcfaas.worker.loader import LoadError, build_metadata

log = logging.getLogger("worker")


def _extend_import_path(cwd: Path) -> None:
    """Makes dependencies installed into the deployment importable."""
    site_packages = cwd / "site-packages"
    for path in (site_packages, cwd):
        if path.is_dir() and str(path) not in sys.path:
            sys.path.insert(0, str(path))


def handle_load(channel: IpcChannel, message: LoadMessage, cwd: Path) -> bool:
    """
    Loads a deployment and reports its applications.

    :return: True if metadata was reported, False if an error was reported.
    """
    deployment_id = message.deployment.get("id")
    log.info(f"Loading deployment '{deployment_id}' from '{cwd}'...")
    try:
        applications = build_metadata(message.deployment, cwd)
    except LoadError as e:
        log.error(f"Failed to load deployment '{deployment_id}': {e.message}")
        channel.send(ErrorMessage(message=e.message, code=e.code))
        return False

    _extend_import_path(cwd)
    channel.send(MetadataMessage(applications=applications))
    log.info(f"Reported {len(applications)} application(s): {', '.join(sorted(applications))}")
    return True


def run_worker(channel: IpcChannel, cwd: Path) -> int:
    """
    The worker's main loop. Serves messages until the control plane closes
    the channel.

    :return: The process exit code.
    """
    for message in channel.messages():
        if isinstance(message, LoadMessage):
            handle_load(channel, message, cwd)
        elif isinstance(message, ErrorMessage):
            log.warning(f"Control plane reported an error: {message.message} (code: {message.code})")
        else:
            log.debug(f"Ignoring '{message.type.value}' message sent to a worker.")

    log.info("Channel closed by the control plane. Worker exiting.")
    return 0
