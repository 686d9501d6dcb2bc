import logging
import threading
import subprocess
from enum import Enum
from typing import IO, Dict, Optional, Set

from mcfaas.ipc import ErrorMessage, IpcChannel

log = logging.getLogger(__name__)


class WorkerState(str, Enum):
    SPAWNED = "spawned"
    READY = "ready"
    TERMINATED = "terminated"
    FAILED = "failed"


_ALLOWED_TRANSITIONS: Dict[WorkerState, Set[WorkerState]] = {
    WorkerState.SPAWNED: {WorkerState.READY, WorkerState.TERMINATED, WorkerState.FAILED},
    WorkerState.READY: {WorkerState.TERMINATED, WorkerState.FAILED},
    WorkerState.TERMINATED: set(),
    WorkerState.FAILED: set(),
}


class WorkerHandle:
    """
    One spawned worker process and its channels.

    Created only by `WorkerSupervisor.spawn`. The state only moves forward:
    Spawned -> Ready -> Terminated | Failed.
    """

    def __init__(self, process: subprocess.Popen, deployment_id: str, channel: IpcChannel) -> None:
        self.process = process
        self.pid: int = process.pid
        self.deployment_id = deployment_id
        self.channel = channel
        self.last_error: Optional[ErrorMessage] = None
        self.stop_requested = False
        self._state = WorkerState.SPAWNED
        self._was_ready = False
        self._state_changed = threading.Condition()

    def __repr__(self) -> str:
        return f"<WorkerHandle pid={self.pid} deployment={self.deployment_id!r} state={self._state.value}>"

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def stdout(self) -> Optional[IO[bytes]]:
        return self.process.stdout

    @property
    def stderr(self) -> Optional[IO[bytes]]:
        return self.process.stderr

    @property
    def is_finished(self) -> bool:
        return self._state in (WorkerState.TERMINATED, WorkerState.FAILED)

    def transition(self, new_state: WorkerState) -> bool:
        """
        Moves the worker to `new_state` if the state machine allows it.

        :return: True if the state changed, False if the move was not allowed
            (already there, or a backwards/terminal move).
        """
        with self._state_changed:
            if new_state not in _ALLOWED_TRANSITIONS[self._state]:
                log.debug(f"Ignoring transition {self._state.value} -> {new_state.value} for worker {self.pid}.")
                return False
            log.info(f"Worker {self.pid} ({self.deployment_id}): {self._state.value} -> {new_state.value}")
            self._state = new_state
            if new_state is WorkerState.READY:
                self._was_ready = True
            self._state_changed.notify_all()
        return True

    def mark_ready(self) -> bool:
        return self.transition(WorkerState.READY)

    def mark_failed(self, reason: str) -> bool:
        changed = self.transition(WorkerState.FAILED)
        if changed:
            log.error(f"Worker {self.pid} ({self.deployment_id}) failed: {reason}")
        return changed

    def mark_exited(self, returncode: int) -> bool:
        """Records process exit. A stop requested by the supervisor counts as clean."""
        if returncode == 0 or self.stop_requested:
            return self.transition(WorkerState.TERMINATED)
        return self.mark_failed(f"process exited with code {returncode}")

    def channel_closed(self) -> None:
        """Called when the worker's end of the channel goes away."""
        if self._state is WorkerState.SPAWNED and not self.stop_requested:
            self.mark_failed("channel closed before the worker became ready")

    def wait_ready(self, timeout: Optional[float] = None) -> bool:
        """
        Blocks until the worker leaves Spawned or the timeout passes.

        :return: True only if the worker reached Ready.
        """
        with self._state_changed:
            self._state_changed.wait_for(lambda: self._state is not WorkerState.SPAWNED, timeout)
            return self._was_ready

    def wait_finished(self, timeout: Optional[float] = None) -> bool:
        """Blocks until the worker is Terminated or Failed."""
        with self._state_changed:
            return self._state_changed.wait_for(lambda: self.is_finished, timeout)
