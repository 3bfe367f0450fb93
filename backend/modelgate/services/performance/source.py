"""
Metrics source: latest PerformanceWindow per (model id, window).

The selector depends only on the MetricsSource protocol. InMemoryMetricsSource
is the bundled implementation; windows are either put directly (e.g. from a
nightly aggregation job) or rebuilt from recorded runs.
"""
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from modelgate.core.logging import get_logger
from modelgate.services.performance.aggregate import aggregate_window
from modelgate.services.performance.schema import ModelRun, PerformanceWindow

logger = get_logger(__name__)

DEFAULT_WINDOWS: Tuple[str, ...] = ("7d", "30d")


class MetricsSource(Protocol):
    async def get_window(self, model_id: str, window: str) -> Optional[PerformanceWindow]:
        ...


class InMemoryMetricsSource:
    """Dict-backed metrics source. Later puts replace earlier ones."""

    def __init__(self, windows: Optional[Iterable[PerformanceWindow]] = None):
        self._windows: Dict[Tuple[str, str], PerformanceWindow] = {}
        for window in windows or ():
            self.put_window(window)

    def put_window(self, window: PerformanceWindow) -> None:
        self._windows[(window.model_id, window.window)] = window

    def remove_window(self, model_id: str, window: str) -> None:
        self._windows.pop((model_id, window), None)

    async def get_window(self, model_id: str, window: str) -> Optional[PerformanceWindow]:
        return self._windows.get((model_id, window))

    def rebuild_from_runs(
        self,
        runs: Sequence[ModelRun],
        windows: Sequence[str] = DEFAULT_WINDOWS,
        now: Optional[datetime] = None,
    ) -> List[PerformanceWindow]:
        """
        Recompute windows for every model that appears in `runs`.

        Windows with zero runs in range are dropped rather than stored, so
        the selector treats the model as having no history.
        """
        model_ids = list(dict.fromkeys(run.model_id for run in runs))
        stored: List[PerformanceWindow] = []
        for model_id in model_ids:
            for window in windows:
                aggregate = aggregate_window(model_id, runs, window, now=now)
                if aggregate.total_runs == 0:
                    self.remove_window(model_id, window)
                    continue
                self.put_window(aggregate)
                stored.append(aggregate)

        logger.info(
            "metrics_windows_rebuilt",
            models_count=len(model_ids),
            windows=list(windows),
            stored_count=len(stored),
        )
        return stored
