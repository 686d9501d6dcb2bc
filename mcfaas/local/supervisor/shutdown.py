import logging
from typing import List, Set

import psutil

log = logging.getLogger(__name__)


def identify_processes_to_stop(pid: int) -> Set[psutil.Process]:
    """
    Collects a worker process and all of its descendants.

    :param pid: The worker's pid.
    :return: A set of psutil.Process objects to be stopped (empty if gone).
    """
    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return set()

    procs: Set[psutil.Process] = {parent}
    try:
        procs.update(parent.children(recursive=True))
    except psutil.NoSuchProcess:
        log.warning(f"Process {pid} no longer exists, skipping children retrieval.")
    return procs


def _terminate_processes(processes: Set[psutil.Process]) -> None:
    """Sends SIGTERM to every process."""
    for proc in processes:
        try:
            log.debug(f"Sending SIGTERM to {proc.name()} (PID {proc.pid})")
            proc.terminate()
        except psutil.NoSuchProcess:
            continue


def _forceful_kill(processes: List[psutil.Process]) -> None:
    """Forcefully kills processes that didn't terminate gracefully."""
    if not processes:
        return

    log.warning(f"{len(processes)} processes did not terminate gracefully. Forcing shutdown...")
    for proc in processes:
        try:
            log.warning(f"Killing stubborn process {proc.name()} (PID {proc.pid}).")
            proc.kill()
        except psutil.NoSuchProcess:
            continue


def graceful_shutdown_sequence(pid: int, timeout: float) -> None:
    """
    Stops a worker's process tree: SIGTERM, wait, then SIGKILL what is left.

    :param pid: The worker's pid.
    :param timeout: Seconds to wait before force-killing.
    """
    processes = identify_processes_to_stop(pid)
    if not processes:
        return

    _terminate_processes(processes)
    try:
        _, alive = psutil.wait_procs(list(processes), timeout=timeout)
    except psutil.NoSuchProcess:
        alive = []

    _forceful_kill(alive)
