"""Several checks on a JSON endpoint.

    LOAD_TEST_URI=http://localhost:8080/api loadcheck run examples/rest_api.py \
        --vus 20 --duration 1m --threshold 0.99
"""

from __future__ import annotations

from loadcheck import (
    HttpClient,
    Response,
    latency_below,
    scenario,
    status_is,
)


def _has_items(response: Response) -> bool:
    return isinstance(response.json().get("items"), list)


@scenario(
    name="list_items",
    checks={
        "is status 200": status_is(200),
        "is json": lambda r: r.headers.get("Content-Type", "").startswith("application/json"),
        "has items": _has_items,
        "under 500ms": latency_below(500),
    },
)
async def list_items(client: HttpClient) -> Response:
    return await client.get("/items", params={"page": "1"})
