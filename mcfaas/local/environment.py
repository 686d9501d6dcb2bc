"""
Environment sanitization for worker spawns.

A worker's environment is the ambient process environment with the
deployment's assignments layered on top, every value coerced to a string.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Tuple

log = logging.getLogger(__name__)


def to_env_value(value: Any) -> str:
    """
    Returns the textual form of a scalar environment value.

    Booleans render lowercase ('true'/'false') and None renders as an empty
    string, so no key ever ends up without a value.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def sanitize(ambient: Mapping[str, str], overrides: Iterable[Tuple[str, Any]]) -> Dict[str, str]:
    """
    Produces a string-keyed, string-valued environment for a process spawn.

    :param ambient: The base environment, usually `os.environ`.
    :param overrides: Ordered (key, value) pairs; later pairs and every
        override take precedence over ambient entries with the same key.
    :return dict: A new mapping; the inputs are not modified.
    """
    env = {str(key): to_env_value(value) for key, value in ambient.items()}
    for key, value in overrides:
        env[str(key)] = to_env_value(value)
    return env


def parse_assignments(assignments: Iterable[Any]) -> List[Tuple[str, Any]]:
    """
    Turns a deployment's env list into ordered (key, value) pairs.

    Each assignment is either a 'KEY=VALUE' string or a mapping with 'name'
    and 'value'. Malformed assignments are skipped.
    """
    pairs: List[Tuple[str, Any]] = []
    for item in assignments or ():
        if isinstance(item, str):
            key, sep, value = item.partition("=")
            if not sep or not key.strip():
                log.warning(f"Skipping malformed environment assignment '{item}'.")
                continue
            pairs.append((key.strip(), value))
        elif isinstance(item, Mapping) and item.get("name"):
            pairs.append((str(item["name"]), item.get("value")))
        else:
            log.warning(f"Skipping malformed environment assignment {item!r}.")
    return pairs
