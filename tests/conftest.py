import os
import sys
import json
import time
import shlex
import threading
from pathlib import Path
from types import SimpleNamespace

import pytest

from mcfaas.ipc import IpcChannel
from mcfaas.local.applications import ApplicationRegistry
from mcfaas.local.deployments import Deployment, DeploymentRegistry
from mcfaas.local.installer import DependencyInstaller
from mcfaas.local.supervisor import WorkerHandle
from mcfaas.web.dispatch import DispatchCoordinator

REPO_ROOT = Path(__file__).resolve().parent.parent


def fake_process(pid: int):
    """Stands in for a Popen object in handles that have no real process."""
    return SimpleNamespace(pid=pid, stdout=None, stderr=None)


class RecordingSupervisor:
    """
    Supervisor double: every spawn returns a handle whose channel is wired to
    an in-test peer channel, so a test can play the worker's part.
    """

    def __init__(self):
        self.spawned = []
        self.terminated = []
        self._next_pid = 4000
        self._lock = threading.Lock()

    def spawn(self, deployment, env):
        channel, child_sock = IpcChannel.pair(name=deployment.id)
        with self._lock:
            self._next_pid += 1
            handle = WorkerHandle(fake_process(self._next_pid), deployment.id, channel)
            peer = IpcChannel(child_sock, name=f"peer-{deployment.id}")
            self.spawned.append(SimpleNamespace(deployment=deployment, env=env, handle=handle, peer=peer))
        return handle

    def find(self, deployment_id):
        return [s.handle for s in self.spawned if s.deployment.id == deployment_id and not s.handle.is_finished]

    def terminate(self, handle):
        handle.stop_requested = True
        handle.mark_exited(0)
        self.terminated.append(handle)

    def stop_all(self):
        for spawned in self.spawned:
            if not spawned.handle.is_finished:
                self.terminate(spawned.handle)

    def by_deployment(self, deployment_id):
        return next(s for s in self.spawned if s.deployment.id == deployment_id)

    def close(self):
        for spawned in self.spawned:
            spawned.peer.close()
            spawned.handle.channel.close()


def write_source(path: Path, scripts=("app.py",), language_id="py") -> Path:
    """Creates a deployment source directory with a descriptor and its scripts."""
    path.mkdir(parents=True, exist_ok=True)
    for script in scripts:
        (path / script).write_text("def hello():\n    return 'hello'\n", encoding="utf-8")
    descriptor = {"language_id": language_id, "path": ".", "scripts": list(scripts)}
    (path / "metacall-python.json").write_text(json.dumps(descriptor), encoding="utf-8")
    return path


ENV_DUMP_NAME = "worker-env.json"

_ENV_DUMP_CODE = "\n".join([
    "import json, os, runpy, sys",
    f"with open('{ENV_DUMP_NAME}.tmp', 'w') as f:",
    "    json.dump({'cwd': os.getcwd(), 'env': dict(os.environ)}, f)",
    f"os.replace('{ENV_DUMP_NAME}.tmp', '{ENV_DUMP_NAME}')",
    "sys.argv = sys.argv[2:]",
    "runpy.run_module('mcfaas.worker', run_name='__main__')",
])


@pytest.fixture
def env_recording_launcher(monkeypatch):
    """
    Launches workers through a prefix that records the worker's cwd and
    environment to `worker-env.json` in its cwd, then runs the real worker.

    :return: A reader taking the source path and returning the recorded dict, or None.
    """
    from mcfaas.local.supervisor import process_utils
    monkeypatch.setattr(process_utils.config, "WORKER_COMMAND", shlex.join([sys.executable, "-c", _ENV_DUMP_CODE]))

    def _read(source_path: Path):
        dump = source_path / ENV_DUMP_NAME
        if not dump.exists():
            return None
        return json.loads(dump.read_text(encoding="utf-8"))
    return _read


@pytest.fixture
def wait_for():
    """Polls a predicate until it holds or the timeout passes."""
    def _wait_for(predicate, timeout: float = 5.0, interval: float = 0.02) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()
    return _wait_for


@pytest.fixture
def worker_pythonpath(monkeypatch):
    """Makes `mcfaas` importable for worker processes started from a tmp cwd."""
    existing = os.environ.get("PYTHONPATH")
    value = str(REPO_ROOT) if not existing else os.pathsep.join([str(REPO_ROOT), existing])
    monkeypatch.setenv("PYTHONPATH", value)
    return value


@pytest.fixture
def demo_source(tmp_path):
    return write_source(tmp_path / "demo")


@pytest.fixture
def deployments(tmp_path, demo_source):
    return DeploymentRegistry([
        Deployment.from_dict({
            "id": "demo", "suffix": "demo", "resourceType": "Package",
            "env": ["FLAG=true"], "plan": "p1", "version": "v1",
            "sourcePath": str(demo_source),
        }),
        Deployment.from_dict({
            "id": "other", "suffix": "other", "resourceType": "Repository",
            "env": [{"name": "FLAG", "value": False}, "MODE=batch"],
            "sourcePath": str(write_source(tmp_path / "other")),
        }),
    ])


@pytest.fixture
def recording_supervisor():
    supervisor = RecordingSupervisor()
    yield supervisor
    supervisor.close()


@pytest.fixture
def coordinator(deployments, recording_supervisor):
    return DispatchCoordinator(
        deployments=deployments,
        applications=ApplicationRegistry(),
        supervisor=recording_supervisor,
        installer=DependencyInstaller(enabled=False),
        host_identifier="test-host",
        ambient_env=lambda: {"PATH": "/usr/bin", "FLAG": "ambient"},
    )
