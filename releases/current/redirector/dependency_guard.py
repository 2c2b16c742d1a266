"""Startup check for the redirect service's third-party dependencies."""
from __future__ import annotations

import importlib
from typing import Callable, Dict, Iterable, List, Mapping

_REQUIREMENTS_PATH = "releases/current/redirector/requirements.txt"

# Import name -> distribution name on the package index.
SERVICE_DEPENDENCIES: Dict[str, str] = {
    "paho.mqtt.client": "paho-mqtt",
    "yaml": "PyYAML",
    "jsonschema": "jsonschema",
    "requests": "requests",
}


def dependency_message(module_name: str, distribution: str = "") -> str:
    """Return the user-facing message for a missing dependency."""
    provided_by = f" (from '{distribution}')" if distribution and distribution != module_name else ""
    return (
        f"Missing dependency '{module_name}'{provided_by}. Please run "
        f"'pip install -r {_REQUIREMENTS_PATH}' before re-running."
    )


def find_missing(modules: Iterable[str]) -> List[str]:
    missing = []
    for module_name in modules:
        try:
            importlib.import_module(module_name)
        except ImportError:
            missing.append(module_name)
    return missing


def check_service_dependencies(
    on_error: Callable[[str, str], None],
    dependencies: Mapping[str, str] = SERVICE_DEPENDENCIES,
) -> None:
    """Report every missing service dependency, then exit with status 1.

    *on_error* is called once per missing module with
    ``(module_name, friendly_message)``.
    """
    missing = find_missing(dependencies)
    for module_name in missing:
        on_error(module_name, dependency_message(module_name, dependencies[module_name]))
    if missing:
        raise SystemExit(1)


__all__ = ["SERVICE_DEPENDENCIES", "check_service_dependencies", "dependency_message", "find_missing"]
