"""Machine-readable export of a run summary."""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loadcheck.metrics.models import NO_DATA

if TYPE_CHECKING:
    from loadcheck.metrics.models import PassRate, RunSummary
    from loadcheck.metrics.thresholds import ThresholdResult


def _rate(value: PassRate) -> float | None:
    # NO_DATA becomes JSON null
    return None if value is NO_DATA else value


def summary_to_dict(
    summary: RunSummary,
    threshold: ThresholdResult | None = None,
) -> dict[str, Any]:
    """Convert a summary to plain JSON-compatible types.

    Pass rates with no data are emitted as ``null``. Integer mapping keys
    (status codes, virtual user ids) become strings.
    """
    data: dict[str, Any] = {
        "total_requests": summary.total_requests,
        "checks_passed": summary.checks_passed,
        "checks_failed": summary.checks_failed,
        "pass_rate": _rate(summary.pass_rate),
        "per_check_pass_rate": {
            name: _rate(value) for name, value in summary.per_check_pass_rate.items()
        },
        "checks": {
            name: {"passes": stats.passes, "fails": stats.fails}
            for name, stats in summary.checks.items()
        },
        "latency_ms": asdict(summary.latency),
        "status_codes": {str(code): count for code, count in summary.status_codes.items()},
        "errors_by_type": dict(summary.errors_by_type),
        "network_errors": summary.network_errors,
        "scenario_errors": summary.scenario_errors,
        "requests_per_vu": {str(vu): count for vu, count in summary.requests_per_vu.items()},
        "virtual_users": summary.virtual_users,
        "duration_seconds": summary.duration_seconds,
        "requests_per_second": summary.requests_per_second,
    }
    if threshold is not None:
        data["threshold"] = {
            "required": threshold.threshold,
            "passed": threshold.passed,
        }
    return data


def summary_to_json(summary: RunSummary, threshold: ThresholdResult | None = None) -> str:
    """Serialise a summary to an indented JSON string."""
    return json.dumps(summary_to_dict(summary, threshold), indent=2)


def write_summary(
    path: str | Path,
    summary: RunSummary,
    threshold: ThresholdResult | None = None,
) -> Path:
    """Write the JSON summary to ``path``, creating parent directories.

    Returns:
        The path written to.
    """
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(summary_to_json(summary, threshold) + "\n")
    return out
