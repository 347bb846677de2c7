"""Integration tests for the run scheduler against a live server."""

from __future__ import annotations

import asyncio
import threading
import time
from typing import TYPE_CHECKING

import pytest

from loadcheck._internal.config import ScenarioConfig
from loadcheck._internal.errors import EngineError
from loadcheck.dsl.decorators import scenario
from loadcheck.dsl.scenario import HttpGetScenario
from loadcheck.dsl.target import resolve
from loadcheck.engine.scheduler import RunState, Scheduler
from loadcheck.metrics.aggregator import ResultAggregator
from loadcheck.metrics.models import NO_DATA

if TYPE_CHECKING:
    from loadcheck.dsl.http_client import HttpClient, Response
    from loadcheck.metrics.models import RequestOutcome, RunProgress


def _config(uri: str, **kwargs: object) -> ScenarioConfig:
    kwargs.setdefault("virtual_users", 2)
    kwargs.setdefault("duration_seconds", 0.5)
    kwargs.setdefault("request_timeout", 5.0)
    return ScenarioConfig(target=resolve(uri), **kwargs)  # type: ignore[arg-type]


@pytest.mark.timeout(15)
async def test_all_ok(echo_server: str) -> None:
    scheduler = Scheduler(_config(f"{echo_server}/health", virtual_users=3))
    summary = await scheduler.start()

    assert scheduler.state is RunState.COMPLETED
    assert summary.total_requests > 0
    assert summary.checks_failed == 0
    assert summary.pass_rate == 1.0
    assert summary.per_check_pass_rate == {"is status 200": 1.0}
    assert summary.virtual_users == 3
    assert set(summary.requests_per_vu) == {1, 2, 3}
    assert summary.duration_seconds >= 0.5


@pytest.mark.timeout(15)
async def test_all_server_errors(echo_server: str) -> None:
    summary = await Scheduler(_config(f"{echo_server}/error?status=500")).start()
    assert summary.total_requests > 0
    assert summary.checks_passed == 0
    assert summary.pass_rate == 0.0
    assert summary.status_codes.keys() == {500}
    assert summary.network_errors == 0


@pytest.mark.timeout(15)
async def test_partial_failures(echo_server: str) -> None:
    summary = await Scheduler(_config(f"{echo_server}/flaky", virtual_users=1)).start()
    assert summary.checks_passed > 0
    assert summary.checks_failed > 0
    assert summary.checks_passed + summary.checks_failed == summary.total_requests
    assert 0.6 <= summary.pass_rate <= 0.8  # type: ignore[operator]


async def test_zero_duration_sends_nothing(echo_server: str) -> None:
    summary = await Scheduler(_config(echo_server, duration_seconds=0.0)).start()
    assert summary.total_requests == 0
    assert summary.pass_rate is NO_DATA
    assert summary.per_check_pass_rate == {"is status 200": NO_DATA}


@pytest.mark.timeout(15)
async def test_ten_users_lose_no_outcomes(echo_server: str) -> None:
    scheduler = Scheduler(_config(f"{echo_server}/health", virtual_users=10))
    summary = await scheduler.start()

    iterations = sum(user.iterations for user in scheduler.virtual_users)
    assert summary.total_requests == iterations
    assert sum(summary.requests_per_vu.values()) == iterations
    assert summary.checks_passed == iterations
    assert len(summary.requests_per_vu) == 10


@pytest.mark.timeout(15)
async def test_stop_ends_run_early(echo_server: str) -> None:
    scheduler = Scheduler(_config(f"{echo_server}/health", duration_seconds=30.0))

    async def _stop_soon() -> None:
        await asyncio.sleep(0.3)
        scheduler.stop()

    start = time.monotonic()
    stopper = asyncio.create_task(_stop_soon())
    summary = await scheduler.start()
    await stopper

    assert time.monotonic() - start < 5.0
    assert summary.total_requests > 0
    assert scheduler.state is RunState.COMPLETED


async def test_stop_before_start_gives_empty_run(echo_server: str) -> None:
    scheduler = Scheduler(_config(echo_server, duration_seconds=30.0))
    scheduler.stop()
    summary = await scheduler.start()
    assert summary.total_requests == 0


async def test_cannot_start_twice(echo_server: str) -> None:
    scheduler = Scheduler(_config(echo_server, duration_seconds=0.0))
    await scheduler.start()
    with pytest.raises(EngineError, match="cannot be started"):
        await scheduler.start()


@pytest.mark.timeout(15)
async def test_progress_is_monotonic(echo_server: str) -> None:
    snapshots: list[RunProgress] = []
    scheduler = Scheduler(
        _config(f"{echo_server}/health", duration_seconds=1.0),
        on_progress=snapshots.append,
        progress_interval=0.2,
    )
    summary = await scheduler.start()

    assert len(snapshots) >= 2
    totals = [p.total_requests for p in snapshots]
    assert totals == sorted(totals)
    assert totals[-1] <= summary.total_requests


@pytest.mark.timeout(15)
async def test_custom_scenario_and_checks(echo_server: str) -> None:
    @scenario(
        name="echo_post",
        checks={
            "is status 200": lambda r: r.status == 200,
            "echoes method": lambda r: r.json()["method"] == "POST",
        },
    )
    async def echo_post(client: HttpClient) -> Response:
        return await client.post("/echo", json={"n": 1})

    summary = await Scheduler(_config(echo_server), echo_post).start()
    assert list(summary.checks) == ["is status 200", "echoes method"]
    assert summary.failed_checks == {}


@pytest.mark.timeout(15)
async def test_scenario_errors_do_not_fail_run(echo_server: str) -> None:
    @scenario()
    async def broken(client: HttpClient) -> Response:
        msg = "always broken"
        raise RuntimeError(msg)

    scheduler = Scheduler(_config(echo_server, duration_seconds=0.2), broken)
    summary = await scheduler.start()
    assert scheduler.state is RunState.COMPLETED
    assert summary.scenario_errors > 0
    assert summary.total_requests == 0


@pytest.mark.timeout(15)
async def test_rate_limit_caps_throughput(echo_server: str) -> None:
    config = _config(f"{echo_server}/health", virtual_users=5, duration_seconds=1.0, rate_limit=20)
    summary = await Scheduler(config).start()
    # Burst of 20 plus about 20 refills over the second.
    assert 1 <= summary.total_requests <= 45


@pytest.mark.timeout(20)
def test_blocking_run(sync_echo_server: str) -> None:
    scheduler = Scheduler(_config(f"{sync_echo_server}/health"), HttpGetScenario())
    summary = scheduler.run()
    assert summary.total_requests > 0
    assert summary.pass_rate == 1.0


@pytest.mark.timeout(20)
def test_blocking_run_stopped_from_another_thread(sync_echo_server: str) -> None:
    scheduler = Scheduler(_config(f"{sync_echo_server}/health", duration_seconds=30.0))
    timer = threading.Timer(0.3, scheduler.stop)
    timer.start()
    start = time.monotonic()
    summary = scheduler.run()
    timer.join()
    assert time.monotonic() - start < 10.0
    assert summary.total_requests > 0


@pytest.mark.timeout(15)
async def test_blocking_check_does_not_stall_other_users(echo_server: str) -> None:
    def _slow_validation(response: Response) -> bool:
        time.sleep(0.2)
        return response.status == 200

    @scenario(name="slow_check", checks={"validated": _slow_validation})
    async def slow_check(client: HttpClient) -> Response:
        return await client.get("/health")

    scheduler = Scheduler(_config(echo_server, virtual_users=5, duration_seconds=1.0), slow_check)
    summary = await scheduler.start()

    # Five users each finishing about five 0.2s iterations in parallel.
    assert summary.total_requests >= 15
    assert all(user.iterations >= 2 for user in scheduler.virtual_users)
    assert summary.failed_checks == {}


@pytest.mark.timeout(15)
async def test_rate_limited_run_ends_at_deadline(echo_server: str) -> None:
    config = _config(
        f"{echo_server}/health", virtual_users=10, duration_seconds=2.0, rate_limit=1
    )
    start = time.monotonic()
    summary = await Scheduler(config).start()

    assert time.monotonic() - start < 4.0
    assert 1 <= summary.total_requests <= 3


@pytest.mark.timeout(15)
async def test_stop_ends_rate_limited_run_promptly(echo_server: str) -> None:
    config = _config(
        f"{echo_server}/health", virtual_users=3, duration_seconds=30.0, rate_limit=0.5
    )
    scheduler = Scheduler(config)
    asyncio.get_running_loop().call_later(0.3, scheduler.stop)

    start = time.monotonic()
    summary = await scheduler.start()

    assert time.monotonic() - start < 3.0
    assert summary.total_requests >= 1
    assert scheduler.state is RunState.COMPLETED


@pytest.mark.timeout(15)
async def test_crashed_user_fails_run(echo_server: str) -> None:
    class _BrokenSink(ResultAggregator):
        def submit(self, outcome: RequestOutcome) -> None:
            msg = "sink unavailable"
            raise RuntimeError(msg)

    scheduler = Scheduler(
        _config(f"{echo_server}/health", duration_seconds=0.3),
        aggregator=_BrokenSink(["is status 200"]),
    )
    with pytest.raises(EngineError, match="Run failed"):
        await scheduler.start()
    assert scheduler.state is RunState.FAILED
