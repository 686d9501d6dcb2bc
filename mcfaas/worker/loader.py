import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping

from pydantic import ValidationError

from mcfaas.ipc import ApplicationDescriptor

log = logging.getLogger(__name__)

DESCRIPTOR_GLOB = "metacall*.json"

# Descriptor file name suffix per language id.
LANGUAGE_FILE_NAMES = {
    "node": "javascript",
    "py": "python",
    "rb": "ruby",
    "cs": "csharp",
    "ts": "typescript",
    "file": "file",
    "rpc": "rpc",
    "wasm": "wasm",
}


class LoadError(Exception):
    """The worker cannot load its deployment. Reported back as an error message."""

    def __init__(self, message: str, code: str) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


def write_descriptor_files(jsons: Iterable[Mapping[str, Any]], path: Path) -> List[Path]:
    """
    Writes one `metacall-<language>.json` file per descriptor.

    :param jsons: Application descriptors (`language_id`, `path`, `scripts`).
    :param path: The directory to write into.
    :return: The paths of the written files, in input order.
    """
    written = []
    for descriptor in jsons:
        language_id = str(descriptor.get("language_id", ""))
        suffix = LANGUAGE_FILE_NAMES.get(language_id, language_id or "unknown")
        file_path = path / f"metacall-{suffix}.json"
        file_path.write_text(json.dumps(dict(descriptor), indent=4), encoding="utf-8")
        written.append(file_path)
    return written


def discover_descriptors(path: Path) -> List[ApplicationDescriptor]:
    """
    Reads every descriptor file in a directory.

    Files that are not valid descriptors are skipped with a warning.
    """
    descriptors = []
    for file_path in sorted(path.glob(DESCRIPTOR_GLOB)):
        try:
            descriptors.append(ApplicationDescriptor.model_validate(json.loads(file_path.read_text(encoding="utf-8"))))
        except (json.JSONDecodeError, OSError, ValidationError) as e:
            log.warning(f"Ignoring invalid descriptor file '{file_path.name}': {e}")
    return descriptors


def _missing_scripts(descriptor: ApplicationDescriptor, cwd: Path) -> List[str]:
    base = cwd / descriptor.path if descriptor.path else cwd
    return [script for script in descriptor.scripts if not (base / script).is_file()]


def build_metadata(deployment: Mapping[str, Any], cwd: Path) -> Dict[str, ApplicationDescriptor]:
    """
    Resolves a deployment's applications relative to the worker's cwd.

    Descriptors shipped with the deployment (`jsons`) are written to disk
    first; otherwise the descriptor files already in the directory are used.
    A deployment with one application reports it under the deployment id;
    several are reported as `<id>:<language_id>`.

    :param deployment: The descriptor carried by the Load message.
    :param cwd: The worker's working directory (the deployment's source path).
    :raises LoadError: If no descriptor is found or a script does not exist.
    """
    jsons = deployment.get("jsons") or []
    if jsons:
        write_descriptor_files(jsons, cwd)
    descriptors = discover_descriptors(cwd)
    if not descriptors:
        raise LoadError(f"No application descriptors found in '{cwd}'.", "NoDescriptors")

    for descriptor in descriptors:
        missing = _missing_scripts(descriptor, cwd)
        if missing:
            raise LoadError(f"Scripts not found relative to '{cwd}': {', '.join(missing)}", "ScriptNotFound")

    deployment_id = str(deployment["id"])
    if len(descriptors) == 1:
        return {deployment_id: descriptors[0]}

    applications: Dict[str, ApplicationDescriptor] = {}
    for descriptor in descriptors:
        name = f"{deployment_id}:{descriptor.language_id}"
        index = 2
        while name in applications:
            name = f"{deployment_id}:{descriptor.language_id}-{index}"
            index += 1
        applications[name] = descriptor
    return applications
