import os
import asyncio
import logging
from functools import partial
from dataclasses import dataclass, asdict
from typing import Any, Callable, Dict, List, Mapping, Optional, Set

from mcfaas.errors import AppError, DeploymentNotFound, SpawnFailure
from mcfaas.ipc import ErrorMessage, LoadMessage, MetadataMessage, ProtocolMessage
from mcfaas.local.applications import ApplicationRegistry
from mcfaas.local.deployments import DeploymentRegistry
from mcfaas.local.environment import sanitize
from mcfaas.local.installer import DependencyInstaller
from mcfaas.local.supervisor import WorkerHandle, WorkerSupervisor

log = logging.getLogger(__name__)

PROTOCOL_VERSION = "v1"


@dataclass(frozen=True)
class DeployResult:
    prefix: str
    suffix: str
    version: str = PROTOCOL_VERSION

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


class DispatchCoordinator:
    """
    Turns deploy requests into running workers.

    A request is answered as soon as the Load message has been sent; the
    worker's readiness is observed asynchronously through the application
    registry.
    """

    def __init__(
        self,
        deployments: DeploymentRegistry,
        applications: ApplicationRegistry,
        supervisor: WorkerSupervisor,
        installer: DependencyInstaller,
        host_identifier: str,
        ambient_env: Optional[Callable[[], Mapping[str, str]]] = None,
    ) -> None:
        self.deployments = deployments
        self.applications = applications
        self.supervisor = supervisor
        self.installer = installer
        self.host_identifier = host_identifier
        self._ambient_env = ambient_env or (lambda: os.environ)

    async def handle_deploy_request(self, body: Any) -> DeployResult:
        """
        Deploys the deployment addressed by `body['suffix']`.

        :param body: The decoded request body.
        :raises AppError: 400 for a bad body, a missing or unknown suffix; installer
            failures unchanged; 500 if the worker cannot be spawned.
        """
        if not isinstance(body, dict):
            raise AppError("Request body must be a JSON object.", 400)

        if body.get("suffix") is None:
            raise AppError("Request body requires a 'suffix'.", 400)

        deployment = self.deployments.lookup(body["suffix"])
        loop = asyncio.get_running_loop()

        # Blocking collaborators run in the executor, outside any registry lock.
        await loop.run_in_executor(None, self.installer.install, deployment)

        env = sanitize(self._ambient_env(), deployment.env_pairs())
        handle = await loop.run_in_executor(None, self.supervisor.spawn, deployment, env)

        try:
            handle.channel.send(LoadMessage(deployment=deployment.to_descriptor()))
        except OSError as e:
            log.error(f"Worker {handle.pid} for '{deployment.id}' closed its channel before loading: {e}")
            raise SpawnFailure(f"Worker for deployment '{deployment.id}' exited before it could be loaded.") from e

        handle.channel.subscribe(partial(self._on_worker_message, handle), on_close=handle.channel_closed)
        log.info(f"Deployment '{deployment.id}' dispatched to worker {handle.pid}.")
        return DeployResult(prefix=self.host_identifier, suffix=deployment.id)

    def _on_worker_message(self, handle: WorkerHandle, message: ProtocolMessage) -> None:
        """Single inbound handler for one worker's channel."""
        if isinstance(message, MetadataMessage):
            if handle.is_finished:
                log.warning(f"Ignoring metadata from finished worker {handle.pid} ({handle.deployment_id}).")
                return
            names = self.applications.apply(message, handle)
            handle.mark_ready()
            log.info(f"Worker {handle.pid} ({handle.deployment_id}) serves: {', '.join(sorted(names))}")
        elif isinstance(message, ErrorMessage):
            handle.last_error = message
            log.error(
                f"Worker {handle.pid} ({handle.deployment_id}) reported an error: "
                f"{message.message} (code: {message.code})"
            )
        else:
            log.warning(f"Unexpected '{message.type.value}' message from worker {handle.pid}. Ignoring.")

    async def undeploy(self, deployment_id: Any) -> Set[str]:
        """
        Stops the workers of a deployment and forgets their applications.

        :return: The application names removed from the registry.
        :raises DeploymentNotFound: If no worker runs for this deployment.
        """
        handles = self.supervisor.find(str(deployment_id))
        if not handles:
            raise DeploymentNotFound(deployment_id)

        loop = asyncio.get_running_loop()
        removed: Set[str] = set()
        for handle in handles:
            removed |= self.applications.remove_owned_by(handle)
            await loop.run_in_executor(None, self.supervisor.terminate, handle)
        log.info(f"Undeployed '{deployment_id}'. Removed applications: {', '.join(sorted(removed)) or 'none'}")
        return removed

    def inspect(self) -> List[Dict[str, Any]]:
        """Lists registered applications with their owning worker's state."""
        result = []
        for entry in sorted(self.applications.entries(), key=lambda e: e.name):
            owner = entry.owner
            item = {"name": entry.name, **entry.metadata.model_dump()}
            if owner is None:
                item.update({"deployment_id": None, "pid": None, "state": "gone"})
            else:
                item.update({"deployment_id": owner.deployment_id, "pid": owner.pid, "state": owner.state.value})
            result.append(item)
        return result
