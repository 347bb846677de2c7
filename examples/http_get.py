"""Default workload written out as a scenario file.

GET the target URI and check that it answers 200. Equivalent to running
``loadcheck run`` with no scenario file:

    LOAD_TEST_URI=http://localhost:8080/health loadcheck run examples/http_get.py --vus 10 --duration 2m
"""

from __future__ import annotations

from loadcheck import HttpClient, Response, scenario, status_is


@scenario(
    name="http_get",
    checks={"is status 200": status_is(200)},
)
async def http_get(client: HttpClient) -> Response:
    """GET the target URI itself."""
    return await client.get()
