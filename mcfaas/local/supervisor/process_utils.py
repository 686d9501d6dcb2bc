import shlex
import logging
import threading
import subprocess
from typing import IO, Any, Dict, List

import psutil

from mcfaas.local.config import effective_settings as config

log = logging.getLogger(__name__)


#* --- Process Status & Monitoring ---
def pid_exists(pid: int) -> bool:
    """A wrapper for psutil.pid_exists for easy testing/mocking if needed."""
    return psutil.pid_exists(pid)


def get_process_status(pid: int) -> str:
    """Gets a string representation of a process status."""
    try:
        proc = psutil.Process(pid)
        if proc.status() == psutil.STATUS_ZOMBIE:
            return "zombie"
        return "running"
    except psutil.NoSuchProcess:
        return "stopped"
    except psutil.Error:
        return "unknown"


#* --- Process Creation ---
def get_popen_kwargs() -> Dict[str, Any]:
    """
    Returns the platform arguments for spawning a worker.

    Workers run in their own session so a signal aimed at the control plane's
    process group does not reach them.
    """
    return {"start_new_session": True}


def get_worker_args(ipc_fd: int) -> List[str]:
    """
    Returns the command line for a worker process.

    The launcher prefix comes from `WORKER_COMMAND` when set (split with shell
    rules), otherwise the configured Python interpreter.

    :param ipc_fd: The inherited descriptor of the worker's end of the IPC channel.
    """
    prefix = shlex.split(config.WORKER_COMMAND) if config.WORKER_COMMAND else [config.PYTHON_EXECUTABLE]
    return prefix + ["-m", config.WORKER_MODULE, "--ipc-fd", str(ipc_fd)]


def _read_pipe(pipe: IO[bytes], pid: int, deployment_id: str, stream: str, level: int) -> None:
    """Target function for reader threads. Reads and logs lines from a worker pipe."""
    proc_logger = logging.getLogger(f"proc.{deployment_id}")
    extra = {"pid": pid, "deployment_id": deployment_id, "stream": stream}
    try:
        for line_bytes in iter(pipe.readline, b""):
            line = line_bytes.decode("utf-8", errors="replace").rstrip()
            if not line:
                continue
            proc_logger.log(level, line, extra=extra)
    except Exception as e:
        proc_logger.debug(f"Pipe reader for worker {pid} {stream} exited: {e}", extra=extra)
    finally:
        pipe.close()


def log_process_output(process: subprocess.Popen, deployment_id: str) -> None:
    """
    Starts background threads to consume and log a worker's stdout/stderr.

    Every line is logged through `proc.<deployment_id>` tagged with the pid
    and deployment id. Consuming the pipes keeps the worker from blocking on
    a full pipe buffer.
    """
    if process.stdout:
        threading.Thread(
            target=_read_pipe,
            args=(process.stdout, process.pid, deployment_id, "stdout", logging.INFO),
            daemon=True,
            name=f"WorkerStdout-{process.pid}",
        ).start()
    if process.stderr:
        threading.Thread(
            target=_read_pipe,
            args=(process.stderr, process.pid, deployment_id, "stderr", logging.ERROR),
            daemon=True,
            name=f"WorkerStderr-{process.pid}",
        ).start()
