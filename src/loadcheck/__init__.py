"""loadcheck: drive concurrent HTTP load against a target and check every response."""

from __future__ import annotations

# Defined before the imports below: the HTTP client builds its User-Agent from it.
__version__ = "0.1.0"

from loadcheck._internal.config import ScenarioConfig, load_config  # noqa: E402
from loadcheck.dsl.checks import (  # noqa: E402
    Check,
    CheckResult,
    body_contains,
    header_equals,
    latency_below,
    status_in,
    status_is,
)
from loadcheck.dsl.decorators import scenario  # noqa: E402
from loadcheck.dsl.http_client import HttpClient, Response  # noqa: E402
from loadcheck.dsl.scenario import BaseScenario, HttpGetScenario, Scenario  # noqa: E402
from loadcheck.dsl.target import ValidatedTarget, resolve  # noqa: E402
from loadcheck.engine.scheduler import Scheduler  # noqa: E402
from loadcheck.metrics.aggregator import ResultAggregator  # noqa: E402
from loadcheck.metrics.models import NO_DATA, RequestOutcome, RunSummary  # noqa: E402

__all__ = [
    "NO_DATA",
    "BaseScenario",
    "Check",
    "CheckResult",
    "HttpClient",
    "HttpGetScenario",
    "RequestOutcome",
    "Response",
    "ResultAggregator",
    "RunSummary",
    "Scenario",
    "ScenarioConfig",
    "Scheduler",
    "ValidatedTarget",
    "body_contains",
    "header_equals",
    "latency_below",
    "load_config",
    "resolve",
    "scenario",
    "status_in",
    "status_is",
]
