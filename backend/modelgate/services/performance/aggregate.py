"""
Fold recorded model runs into PerformanceWindow aggregates.

Window strings: "1h", "24h", "7d", "30d", "90d" or any "<N>d".
"""
import re
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from modelgate.services.performance.schema import ModelRun, PerformanceWindow

_DAYS_PATTERN = re.compile(r"^(\d+)d$")
_FIXED_WINDOWS = {
    "1h": timedelta(hours=1),
    "24h": timedelta(hours=24),
}


def parse_window(window: str) -> timedelta:
    """
    Convert a window label into a duration.

    Raises:
        ValueError for unrecognised labels.
    """
    if window in _FIXED_WINDOWS:
        return _FIXED_WINDOWS[window]
    match = _DAYS_PATTERN.match(window)
    if match:
        return timedelta(days=int(match.group(1)))
    raise ValueError(f"Invalid window: {window!r}")


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def _mean(values: list) -> float:
    return sum(values) / len(values) if values else 0.0


def aggregate_window(
    model_id: str,
    runs: Iterable[ModelRun],
    window: str,
    now: Optional[datetime] = None,
) -> PerformanceWindow:
    """
    Compute the aggregate for one model over one window.

    Runs for other models or older than the window start are ignored. With
    no runs in range every rate is zero. Correction rate is corrections over
    feedback items, not over runs.
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    window_start = now - parse_window(window)

    in_window = [
        run for run in runs
        if run.model_id == model_id and run.created_at >= window_start
    ]
    total_runs = len(in_window)

    if total_runs == 0:
        return PerformanceWindow(
            model_id=model_id,
            window=window,
            success_rate=0.0,
            avg_confidence=0.0,
            correction_rate=0.0,
            cost_per_run=0.0,
            mean_time_to_fix_ms=0.0,
            total_runs=0,
        )

    successful_runs = sum(1 for run in in_window if run.success)
    feedback_count = sum(run.feedback_count for run in in_window)
    corrections_count = sum(run.corrections_count for run in in_window)

    return PerformanceWindow(
        model_id=model_id,
        window=window,
        success_rate=_clamp(successful_runs / total_runs),
        avg_confidence=_clamp(_mean([run.confidence for run in in_window if run.confidence is not None])),
        correction_rate=_clamp(corrections_count / feedback_count) if feedback_count else 0.0,
        cost_per_run=max(_mean([run.cost_usd for run in in_window if run.cost_usd is not None]), 0.0),
        mean_time_to_fix_ms=max(_mean([run.runtime_ms for run in in_window if run.runtime_ms is not None]), 0.0),
        total_runs=total_runs,
    )
