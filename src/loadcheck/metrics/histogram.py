"""Latency histogram backed by HdrHistogram.

Values go in and come out in milliseconds; the underlying HDR histogram
stores integer microseconds.
"""

from __future__ import annotations

from hdrh.histogram import HdrHistogram  # type: ignore[import-untyped]

from loadcheck.metrics.models import LatencyStats

# Range: 1 microsecond to 5 minutes (in microseconds). Requests are bounded by
# the per-request timeout, so anything longer is clamped.
_LOWEST_TRACKABLE_US = 1
_HIGHEST_TRACKABLE_US = 300_000_000
_SIGNIFICANT_DIGITS = 3


class LatencyHistogram:
    """Records request latencies and reports their distribution.

    Not thread-safe on its own; the aggregator serialises access.
    """

    def __init__(
        self,
        lowest_us: int = _LOWEST_TRACKABLE_US,
        highest_us: int = _HIGHEST_TRACKABLE_US,
        significant_digits: int = _SIGNIFICANT_DIGITS,
    ) -> None:
        self.lowest_us = lowest_us
        self.highest_us = highest_us
        self._histogram: HdrHistogram = HdrHistogram(  # type: ignore[no-any-unimported]
            lowest_us, highest_us, significant_digits
        )

    def __len__(self) -> int:
        return int(self._histogram.total_count)

    def record_ms(self, latency_ms: float) -> None:
        """Record one latency, clamped to the trackable range."""
        value_us = int(latency_ms * 1000)
        value_us = max(self.lowest_us, min(value_us, self.highest_us))
        self._histogram.record_value(value_us)

    def percentile_ms(self, percentile: float) -> float:
        """Return the latency at ``percentile`` (0-100), or 0.0 when empty."""
        if not len(self):
            return 0.0
        return self._histogram.get_value_at_percentile(percentile) / 1000.0

    def stats(self) -> LatencyStats:
        """Summarise the recorded latencies."""
        if not len(self):
            return LatencyStats()
        return LatencyStats(
            min=self._histogram.get_min_value() / 1000.0,
            max=self._histogram.get_max_value() / 1000.0,
            mean=self._histogram.get_mean_value() / 1000.0,
            p50=self.percentile_ms(50.0),
            p90=self.percentile_ms(90.0),
            p95=self.percentile_ms(95.0),
            p99=self.percentile_ms(99.0),
        )
