import sys
import shutil
import logging
import subprocess
from pathlib import Path
from typing import List, Optional, Tuple

from mcfaas.errors import InstallFailure
from mcfaas.local.config import effective_settings as config
from mcfaas.local.deployments import Deployment

log = logging.getLogger(__name__)


class DependencyInstaller:
    """
    Installs a deployment's declared dependencies into its source path.

    One install step runs per dependency manifest found in the source path:
    `requirements.txt` through pip and `package.json` through npm. Nothing is
    retried; a failing step raises `InstallFailure`.
    """

    def __init__(self, enabled: Optional[bool] = None, timeout: Optional[float] = None) -> None:
        self.enabled = config.INSTALL_DEPENDENCIES if enabled is None else enabled
        self.timeout = config.INSTALL_TIMEOUT_SECONDS if timeout is None else timeout

    def get_install_steps(self, source_path: Path) -> List[Tuple[str, List[str]]]:
        """
        Returns the (name, command) install steps for a source path.

        :param source_path: The deployment's source directory.
        """
        steps = []
        if (source_path / "requirements.txt").is_file():
            steps.append((
                "pip",
                [config.PYTHON_EXECUTABLE, "-m", "pip", "install",
                 "--target", str(source_path / "site-packages"), "-r", "requirements.txt"],
            ))
        if (source_path / "package.json").is_file():
            steps.append(("npm", [config.NPM_EXECUTABLE, "install", "--no-audit", "--no-fund"]))
        return steps

    def install(self, deployment: Deployment) -> None:
        """
        Runs every install step for a deployment, in its source path.

        :param deployment: The deployment to prepare.
        :raises InstallFailure: If a tool is missing, fails, or times out.
        """
        if not self.enabled:
            log.debug(f"Dependency installation disabled. Skipping '{deployment.id}'.")
            return

        source_path = deployment.source_path
        if not source_path.is_dir():
            # Nothing to install into; spawning will report the missing directory.
            log.warning(f"Source path '{source_path}' for deployment '{deployment.id}' does not exist.")
            return

        for name, command in self.get_install_steps(source_path):
            self._run_step(deployment, name, command)

    def _run_step(self, deployment: Deployment, name: str, command: List[str]) -> None:
        if shutil.which(command[0]) is None and not Path(command[0]).is_file():
            raise InstallFailure(f"Cannot install dependencies for '{deployment.id}': '{command[0]}' not found.")

        log.info(f"Installing {name} dependencies for deployment '{deployment.id}'...")
        try:
            creationflags = subprocess.CREATE_NO_WINDOW if sys.platform == "win32" else 0
            result = subprocess.run(
                command, cwd=str(deployment.source_path), check=True, capture_output=True,
                text=True, timeout=self.timeout, creationflags=creationflags
            )
            log.debug(f"{name} output for {deployment.id}:\n{result.stdout}")
            log.info(f"Successfully installed {name} dependencies for '{deployment.id}'.")
        except subprocess.CalledProcessError as e:
            log.error(f"Failed to install {name} dependencies for '{deployment.id}':\n{e.stderr}")
            raise InstallFailure(
                f"Dependency installation ({name}) failed for deployment '{deployment.id}'.",
                output=e.stderr,
            ) from e
        except subprocess.TimeoutExpired as e:
            raise InstallFailure(
                f"Dependency installation ({name}) for deployment '{deployment.id}' timed out after {self.timeout}s.",
                status_code=504,
            ) from e
