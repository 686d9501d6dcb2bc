import logging
import threading
import subprocess
from typing import Dict, List, Mapping, Optional

from mcfaas.errors import SpawnFailure
from mcfaas.ipc import IpcChannel
from mcfaas.local.config import effective_settings as config
from mcfaas.local.deployments import Deployment
from mcfaas.local.supervisor import process_utils, shutdown
from mcfaas.local.supervisor.handle import WorkerHandle

log = logging.getLogger(__name__)


class WorkerSupervisor:
    """
    Spawns one worker process per deployment and owns the handles for their
    whole lifetime.

    Handles are tracked by pid until their process exits. Per worker, the
    supervisor runs daemon threads that forward stdout/stderr to the log sink,
    wait for process exit, and fail workers that never become Ready.
    """

    def __init__(self, ready_timeout: Optional[float] = None, shutdown_timeout: Optional[float] = None) -> None:
        self.ready_timeout = config.WORKER_READY_TIMEOUT_SECONDS if ready_timeout is None else ready_timeout
        self.shutdown_timeout = config.GRACEFUL_SHUTDOWN_TIMEOUT if shutdown_timeout is None else shutdown_timeout
        self._workers: Dict[int, WorkerHandle] = {}
        self._lock = threading.Lock()

    def spawn(self, deployment: Deployment, env: Mapping[str, str]) -> WorkerHandle:
        """
        Starts a worker for a deployment.

        The worker's cwd is the deployment's source path so that its own module
        resolution finds deployment-local dependencies. Its environment is
        exactly `env`.

        :param deployment: The deployment to run.
        :param env: The sanitized environment.
        :raises SpawnFailure: If the process could not be created.
        """
        channel, child_sock = IpcChannel.pair(name=f"{deployment.id}")
        args = process_utils.get_worker_args(child_sock.fileno())
        log.info(f"Starting worker for deployment '{deployment.id}' in '{deployment.source_path}'...")
        try:
            p = subprocess.Popen(
                args,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=str(deployment.source_path),
                env=dict(env),
                pass_fds=(child_sock.fileno(),),
                **process_utils.get_popen_kwargs(),
            )
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            channel.close()
            log.critical(f"Failed to start worker for deployment '{deployment.id}': {e}", exc_info=True)
            raise SpawnFailure(f"Failed to spawn worker for deployment '{deployment.id}': {e}") from e
        finally:
            # The child holds its own copy now.
            child_sock.close()

        handle = WorkerHandle(p, deployment.id, channel)
        with self._lock:
            self._workers[handle.pid] = handle

        process_utils.log_process_output(p, deployment.id)
        threading.Thread(
            target=self._watch_exit, args=(handle,), daemon=True, name=f"WorkerExit-{handle.pid}"
        ).start()
        if self.ready_timeout and self.ready_timeout > 0:
            threading.Thread(
                target=self._watch_readiness, args=(handle,), daemon=True, name=f"WorkerReady-{handle.pid}"
            ).start()

        log.info(f"Worker for deployment '{deployment.id}' started with PID: {handle.pid}")
        return handle

    def _watch_exit(self, handle: WorkerHandle) -> None:
        """Waits for the worker process to exit and records the outcome."""
        returncode = handle.process.wait()
        # Let the reader drain whatever the worker sent before exiting.
        handle.channel.join(timeout=self.shutdown_timeout)
        handle.mark_exited(returncode)
        handle.channel.close()
        with self._lock:
            self._workers.pop(handle.pid, None)
        log.info(f"Worker {handle.pid} ({handle.deployment_id}) exited with code {returncode}.")

    def _watch_readiness(self, handle: WorkerHandle) -> None:
        """Fails and stops a worker that does not report metadata in time."""
        if handle.wait_ready(self.ready_timeout) or handle.is_finished:
            return
        if handle.mark_failed(f"no application metadata within {self.ready_timeout}s"):
            self._stop(handle)

    def _stop(self, handle: WorkerHandle) -> None:
        if process_utils.pid_exists(handle.pid):
            shutdown.graceful_shutdown_sequence(handle.pid, self.shutdown_timeout)

    def terminate(self, handle: WorkerHandle) -> None:
        """
        Stops a worker and its child processes gracefully.

        The worker ends Terminated unless it had already failed.
        """
        log.info(f"Stopping worker {handle.pid} ({handle.deployment_id})...")
        handle.stop_requested = True
        self._stop(handle)
        if not handle.wait_finished(self.shutdown_timeout):
            log.warning(f"Worker {handle.pid} did not report exit within {self.shutdown_timeout}s.")

    def stop_all(self) -> None:
        """Stops every tracked worker."""
        handles = self.workers()
        if not handles:
            log.info("No running workers to stop.")
            return
        log.info(f"Initiating graceful shutdown for {len(handles)} worker(s)...")
        for handle in handles:
            self.terminate(handle)

    def workers(self) -> List[WorkerHandle]:
        with self._lock:
            return list(self._workers.values())

    def get(self, pid: int) -> Optional[WorkerHandle]:
        with self._lock:
            return self._workers.get(pid)

    def find(self, deployment_id: str) -> List[WorkerHandle]:
        """Returns the tracked, unfinished workers of a deployment."""
        return [h for h in self.workers() if h.deployment_id == deployment_id and not h.is_finished]

    @staticmethod
    def status(handle: WorkerHandle) -> str:
        """The OS-level status of a worker's process."""
        return process_utils.get_process_status(handle.pid)
