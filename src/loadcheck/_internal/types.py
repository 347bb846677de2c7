"""Type aliases shared across loadcheck modules."""

from __future__ import annotations

from collections.abc import Mapping

# Request headers, name to value.
Headers = dict[str, str]

# Response headers. Repeated names such as Set-Cookie keep every value.
ResponseHeaders = Mapping[str, str]

# Response count per HTTP status code; 0 counts requests with no response.
StatusCounts = dict[int, int]
