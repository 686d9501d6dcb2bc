import logging
from types import MappingProxyType
from enum import Enum
from pathlib import Path
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import yaml

from mcfaas.errors import DeploymentNotFound
from mcfaas.local.environment import parse_assignments

log = logging.getLogger(__name__)


class ResourceType(str, Enum):
    PACKAGE = "Package"
    REPOSITORY = "Repository"


@dataclass(frozen=True)
class Deployment:
    """A provisioned unit of deployable code with a fixed source location."""

    id: str
    suffix: str
    source_path: Path
    resource_type: ResourceType = ResourceType.PACKAGE
    release: str = ""
    env: Tuple[Any, ...] = ()
    plan: str = ""
    version: str = ""
    jsons: Tuple[Dict[str, Any], ...] = field(default=())

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], base_dir: Optional[Path] = None) -> "Deployment":
        """
        Builds a deployment from a provisioning record.

        Accepts both the wire spelling (`resourceType`, `sourcePath`) and the
        snake_case spelling of the keys. A relative source path is resolved
        against `base_dir`.

        :param data: The raw record.
        :param base_dir: Directory that relative source paths are relative to.
        :raises ValueError: If the record has no id or no source path.
        """
        deployment_id = data.get("id")
        source = data.get("sourcePath", data.get("source_path"))
        if not deployment_id or not source:
            raise ValueError(f"Deployment record requires 'id' and 'sourcePath': {dict(data)}")

        source_path = Path(source)
        if base_dir is not None and not source_path.is_absolute():
            source_path = base_dir / source_path

        return cls(
            id=str(deployment_id),
            suffix=str(data.get("suffix", deployment_id)),
            source_path=source_path,
            resource_type=ResourceType(data.get("resourceType", data.get("resource_type", "Package"))),
            release=str(data.get("release", "")),
            env=tuple(data.get("env") or ()),
            plan=str(data.get("plan", "")),
            version=str(data.get("version", "")),
            jsons=tuple(data.get("jsons") or ()),
        )

    def env_pairs(self) -> List[Tuple[str, Any]]:
        """Returns the deployment's environment assignments as ordered pairs."""
        return parse_assignments(self.env)

    def to_descriptor(self) -> Dict[str, Any]:
        """The JSON-ready descriptor carried by the Load message."""
        return {
            "id": self.id,
            "suffix": self.suffix,
            "resourceType": self.resource_type.value,
            "release": self.release,
            "env": list(self.env),
            "plan": self.plan,
            "version": self.version,
            "sourcePath": str(self.source_path),
            "jsons": [dict(j) for j in self.jsons],
        }


class DeploymentRegistry:
    """
    Immutable lookup table of known deployments keyed by suffix.

    Records are created by an external provisioning step; the control plane
    only reads them.
    """

    def __init__(self, deployments: Iterable[Deployment] = ()) -> None:
        table: Dict[str, Deployment] = {}
        for deployment in deployments:
            if deployment.suffix in table:
                raise ValueError(f"Duplicate deployment suffix '{deployment.suffix}'.")
            table[deployment.suffix] = deployment
        self._by_suffix: Mapping[str, Deployment] = MappingProxyType(table)

    @classmethod
    def from_file(cls, path: Path) -> "DeploymentRegistry":
        """
        Loads deployments from a YAML provisioning file.

        The file holds a list of records, or a mapping with a 'deployments'
        list. A missing file yields an empty registry.

        :param path: The provisioning file.
        """
        if not path.exists():
            log.warning(f"Deployments file '{path}' not found. Starting with an empty registry.")
            return cls()

        try:
            # Use safe_load to prevent arbitrary code execution from provisioning data.
            raw = yaml.safe_load(path.read_text(encoding="utf-8")) or []
        except yaml.YAMLError as e:
            log.error(f"Error parsing deployments file '{path}': {e}", exc_info=True)
            raise

        records = raw.get("deployments", []) if isinstance(raw, dict) else raw
        if not isinstance(records, list):
            raise ValueError(f"Deployments file '{path}' must contain a list of deployments.")

        registry = cls(Deployment.from_dict(r, base_dir=path.parent) for r in records)
        log.info(f"Loaded {len(registry)} deployment(s) from '{path}'.")
        return registry

    def lookup(self, suffix: Any) -> Deployment:
        """
        Resolves a suffix to its deployment.

        :param suffix: The external lookup key. Any value is accepted.
        :raises DeploymentNotFound: If no deployment has this suffix.
        """
        deployment = self._by_suffix.get(str(suffix))
        if deployment is None:
            raise DeploymentNotFound(suffix)
        return deployment

    def all(self) -> List[Deployment]:
        return list(self._by_suffix.values())

    def __contains__(self, suffix: object) -> bool:
        return str(suffix) in self._by_suffix

    def __len__(self) -> int:
        return len(self._by_suffix)
