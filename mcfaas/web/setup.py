"""
The ASGI application object served by Hypercorn (`mcfaas.web.setup:app`).

Builds the registries, supervisor and coordinator from the effective settings.
"""
import setproctitle
setproctitle.setproctitle("MCFaaS - Coordinator")

import logging
from mcfaas.log import setup_logging
from mcfaas.web.server import build_app
from mcfaas.local.config import effective_settings as config
from mcfaas.local.installer import DependencyInstaller
from mcfaas.local.supervisor import WorkerSupervisor
from mcfaas.local.applications import ApplicationRegistry
from mcfaas.local.deployments import DeploymentRegistry
from mcfaas.web.dispatch import DispatchCoordinator

log = logging.getLogger("asgi_server")
setup_logging(console_level=logging.INFO)


def create_coordinator() -> DispatchCoordinator:
    """Wires the control plane from the effective settings."""
    return DispatchCoordinator(
        deployments=DeploymentRegistry.from_file(config.DEPLOYMENTS_FILE),
        applications=ApplicationRegistry(),
        supervisor=WorkerSupervisor(),
        installer=DependencyInstaller(),
        host_identifier=config.HOST_IDENTIFIER,
    )


# The main application object to be loaded by Hypercorn
app = build_app(create_coordinator())

log.info("Starlette ASGI control plane configured and ready.")
