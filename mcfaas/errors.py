"""
Domain errors shared by the control plane.

Every error that should reach an HTTP caller is an `AppError`, carrying a
numeric status code and a coarse status class ('fail' for 4xx, 'error' for 5xx).
"""

from typing import Any, Dict, Optional


class AppError(Exception):
    """An error that the global handler renders to the caller."""

    def __init__(self, message: str, status_code: int = 500) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.status = "fail" if str(status_code).startswith("4") else "error"

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status, "message": self.message}


class DeploymentNotFound(AppError):
    """The requested suffix is not present in the deployment registry."""

    def __init__(self, suffix: Any) -> None:
        super().__init__(f"Invalid deployment id: {suffix}", 400)
        self.suffix = suffix


class SpawnFailure(AppError):
    """The operating system could not create a worker process."""

    def __init__(self, message: str) -> None:
        super().__init__(message, 500)


class InstallFailure(AppError):
    """
    Raised by the dependency installer.

    The status code is the installer's own classification and is passed to
    the caller unchanged.
    """

    def __init__(self, message: str, status_code: int = 500, output: Optional[str] = None) -> None:
        super().__init__(message, status_code)
        self.output = output
