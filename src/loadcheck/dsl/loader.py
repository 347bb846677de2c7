"""Loading of user scenario files."""

from __future__ import annotations

import importlib.util
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from loadcheck._internal.errors import ScenarioError
from loadcheck._internal.logging import get_logger
from loadcheck.dsl.scenario import Scenario

if TYPE_CHECKING:
    from types import ModuleType

logger = get_logger("dsl.loader")


def load_scenario(file_path: str | Path, name: str | None = None) -> Scenario:
    """Import a Python file and return the scenario it defines.

    Any module-level object satisfying the ``Scenario`` protocol counts:
    ``@scenario``-decorated functions, ``HttpGetScenario`` instances, or
    instances of user subclasses of ``BaseScenario``. Classes themselves
    are ignored.

    Args:
        file_path: Path to the ``.py`` scenario file.
        name: Scenario name to select when the file defines several.
            Without it the first one, in definition order, is used.

    Returns:
        The selected scenario.

    Raises:
        ScenarioError: If the file is missing, is not a ``.py`` file,
            fails to import, defines no scenario, or has none named
            ``name``.
    """
    path = Path(file_path)
    if not path.exists():
        msg = f"Scenario file not found: {path}"
        raise ScenarioError(msg)
    if path.suffix != ".py":
        msg = f"Scenario file must be a .py file, got: {path}"
        raise ScenarioError(msg)

    module = _import_file(path)
    found = _collect_scenarios(module)

    if not found:
        sys.modules.pop(module.__name__, None)
        msg = (
            f"No scenario found in {path}. "
            "Decorate an async function with @scenario or define a scenario instance."
        )
        raise ScenarioError(msg)

    if name is not None:
        for candidate in found:
            if candidate.name == name:
                return candidate
        available = ", ".join(s.name for s in found)
        msg = f"No scenario named {name!r} in {path} (available: {available})"
        raise ScenarioError(msg)

    if len(found) > 1:
        logger.warning(
            "%s defines %d scenarios, using %r", path, len(found), found[0].name
        )
    return found[0]


def _import_file(path: Path) -> ModuleType:
    module_name = f"loadcheck_scenario_{path.stem}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        msg = f"Could not create module spec for: {path}"
        raise ScenarioError(msg)

    module = importlib.util.module_from_spec(spec)
    # Dataclasses defined in the file look their module up in sys.modules.
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        sys.modules.pop(module_name, None)
        msg = f"Failed to import scenario file {path}: {exc}"
        raise ScenarioError(msg) from exc
    return module


def _collect_scenarios(module: ModuleType) -> list[Scenario]:
    return [
        obj
        for obj in vars(module).values()
        if not isinstance(obj, type) and isinstance(obj, Scenario)
    ]
