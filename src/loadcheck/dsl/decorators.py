"""Decorator for defining scenarios as plain coroutine functions."""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING

from loadcheck._internal.errors import ScenarioError
from loadcheck.dsl.checks import checks_from_mapping
from loadcheck.dsl.scenario import FunctionScenario

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping

    from loadcheck.dsl.checks import Predicate
    from loadcheck.dsl.http_client import HttpClient, Response

    ScenarioFunc = Callable[[HttpClient], Awaitable[Response]]


def scenario(
    *,
    name: str | None = None,
    checks: Mapping[str, Predicate] | None = None,
) -> Callable[[ScenarioFunc], FunctionScenario]:
    """Turn an async function into a scenario.

    The decorated function receives the virtual user's ``HttpClient`` and
    returns the ``Response`` to check. Checks are given k6-style, as an
    ordered ``{name: predicate}`` mapping::

        @scenario(name="homepage", checks={"is status 200": status_is(200)})
        async def homepage(client: HttpClient) -> Response:
            return await client.get("/")

    Args:
        name: Scenario name. Defaults to the function name.
        checks: Checks to evaluate on every response. Defaults to
            ``"is status 200"``.

    Returns:
        A decorator that replaces the function with a ``FunctionScenario``.

    Raises:
        ScenarioError: If the function is not a coroutine function, the
            check mapping is empty, or two checks share a name.
    """
    if checks is not None and not checks:
        msg = "A scenario needs at least one check; omit `checks` to use the default"
        raise ScenarioError(msg)

    def decorator(func: ScenarioFunc) -> FunctionScenario:
        if not inspect.iscoroutinefunction(func):
            func_name = getattr(func, "__name__", repr(func))
            msg = f"Scenario function {func_name} must be an async function"
            raise ScenarioError(msg)

        return FunctionScenario(
            name=name or func.__name__,
            func=func,
            checks=checks_from_mapping(checks) if checks is not None else None,
        )

    return decorator
