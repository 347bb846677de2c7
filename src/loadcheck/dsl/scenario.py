"""Scenario abstraction: the unit of work a virtual user repeats."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from loadcheck._internal.errors import NetworkError
from loadcheck.dsl.checks import Check, evaluate, status_is, validate_checks
from loadcheck.dsl.http_client import Response
from loadcheck.metrics.models import RequestOutcome

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    from loadcheck.dsl.http_client import HttpClient

DEFAULT_CHECKS: tuple[Check, ...] = (Check("is status 200", status_is(200)),)


@runtime_checkable
class Scenario(Protocol):
    """Anything the scheduler can run on behalf of a virtual user.

    ``execute`` performs one iteration with the virtual user's client and
    returns its outcome. ``check_names`` lists the checks the scenario
    evaluates so they can be reported even when no iteration ran.
    """

    name: str

    @property
    def check_names(self) -> tuple[str, ...]:
        """Names of the checks this scenario evaluates, in order."""
        ...

    async def execute(self, client: HttpClient) -> RequestOutcome:
        """Run one iteration."""
        ...


class BaseScenario(ABC):
    """Scenario that sends one request per iteration and checks the response.

    Subclasses implement :meth:`send`. A ``NetworkError`` raised while
    sending is turned into a status-0 ``Response`` so the failure is
    recorded through the checks instead of ending the virtual user.

    Args:
        name: Scenario name used in logs and reports.
        checks: Checks evaluated against every response. Defaults to
            ``"is status 200"``.
    """

    def __init__(self, name: str, checks: Iterable[Check] | None = None) -> None:
        self.name = name
        self.checks = validate_checks(DEFAULT_CHECKS if checks is None else checks)

    @property
    def check_names(self) -> tuple[str, ...]:
        return tuple(check.name for check in self.checks)

    @abstractmethod
    async def send(self, client: HttpClient) -> Response:
        """Issue the request(s) of one iteration and return the response to check."""

    async def execute(self, client: HttpClient) -> RequestOutcome:
        try:
            response = await self.send(client)
        except NetworkError as exc:
            response = Response.from_network_error(exc)

        return RequestOutcome(
            vu_id=client.vu_id,
            name=self.name,
            method=response.method,
            url=response.url,
            status_code=response.status,
            latency_ms=response.latency_ms,
            timestamp=time.time(),
            checks=evaluate(response, self.checks),
            error=response.error,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, checks={list(self.check_names)!r})"


class HttpGetScenario(BaseScenario):
    """GET the target and check the response.

    This is the default workload::

        GET $LOAD_TEST_URI  ->  check "is status 200"

    Args:
        path: Path relative to the target. Empty means the target itself.
        name: Scenario name.
        checks: Checks to evaluate. Defaults to ``"is status 200"``.
    """

    def __init__(
        self,
        path: str = "",
        *,
        name: str = "http_get",
        checks: Iterable[Check] | None = None,
    ) -> None:
        super().__init__(name, checks)
        self.path = path

    async def send(self, client: HttpClient) -> Response:
        return await client.get(self.path)


class FunctionScenario(BaseScenario):
    """Scenario whose request logic is a user-supplied coroutine function.

    Usually created with the ``@scenario`` decorator rather than directly.

    Args:
        name: Scenario name.
        func: ``async def func(client) -> Response``.
        checks: Checks to evaluate.
    """

    def __init__(
        self,
        name: str,
        func: Callable[[HttpClient], Awaitable[Response]],
        checks: Iterable[Check] | None = None,
    ) -> None:
        super().__init__(name, checks)
        self.func = func

    async def send(self, client: HttpClient) -> Response:
        return await self.func(client)
