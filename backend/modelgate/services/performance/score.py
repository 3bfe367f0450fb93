"""
Performance scoring for model selection.

score = (
    0.4 * success_rate +
    0.3 * avg_confidence +
    0.2 * (1 - correction_rate) +
    0.1 * performance_factor
)

performance_factor = 1 - (0.6 * normalized_cost + 0.4 * normalized_latency)

Cost is normalized against 0.10 currency units per run and latency against
60s; both are clamped to [0, 1]. Models with more than 10 runs in the window
get a 1.1x boost. The final score is clamped to [0, 1].
"""
from typing import Dict, Optional

from modelgate.services.performance.schema import PerformanceWindow

WEIGHTS = {
    "success_rate": 0.4,
    "avg_confidence": 0.3,
    "correction_free_rate": 0.2,
    "performance_factor": 0.1,
}

PERFORMANCE_FACTOR_WEIGHTS = {
    "cost": 0.6,
    "latency": 0.4,
}

COST_CEILING_PER_RUN = 0.10
LATENCY_CEILING_MS = 60_000.0

HISTORY_BOOST = 1.1
HISTORY_BOOST_MIN_RUNS = 10

NEUTRAL_SCORE = 0.6


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def compute_performance_factor(cost_per_run: float, mean_time_ms: float) -> float:
    """
    Cheaper and faster is better; returns a value in [0, 1].

    Args:
        cost_per_run: Average cost per run
        mean_time_ms: Average runtime in milliseconds
    """
    normalized_cost = clamp(cost_per_run / COST_CEILING_PER_RUN)
    normalized_latency = clamp(mean_time_ms / LATENCY_CEILING_MS)
    return 1.0 - (
        PERFORMANCE_FACTOR_WEIGHTS["cost"] * normalized_cost +
        PERFORMANCE_FACTOR_WEIGHTS["latency"] * normalized_latency
    )


def score_breakdown(window: PerformanceWindow) -> Dict[str, float]:
    """Individual weighted inputs, for explainability in logs."""
    return {
        "success_rate": window.success_rate,
        "avg_confidence": window.avg_confidence,
        "correction_free_rate": 1.0 - window.correction_rate,
        "performance_factor": compute_performance_factor(window.cost_per_run, window.mean_time_to_fix_ms),
    }


def compute_model_score(window: Optional[PerformanceWindow]) -> float:
    """
    Score one model from its most recent performance window.

    Args:
        window: Latest available window, or None when the model has no history

    Returns:
        Score in [0, 1]; NEUTRAL_SCORE when there is no window
    """
    if window is None:
        return NEUTRAL_SCORE

    breakdown = score_breakdown(window)
    score = sum(WEIGHTS[name] * value for name, value in breakdown.items())

    if window.total_runs > HISTORY_BOOST_MIN_RUNS:
        score *= HISTORY_BOOST

    return clamp(score)
