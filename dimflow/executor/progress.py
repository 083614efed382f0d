"""Run progress: counts, cost so far, cost/ETA estimates.

Every finished execution (success, failure or skip) counts as one completed
operation. A section dimension has one operation per section; a global
dimension has one.
"""

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Optional

from dimflow.analysis.cost_calculator import CostCalculator
from dimflow.schemas import DimensionProgress, DimensionResult, ProgressUpdate

logger = logging.getLogger(__name__)

DURATION_WINDOW = 50


@dataclass
class _DimState:
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    cost: float = 0.0
    total: Optional[int] = None
    durations: deque = field(default_factory=lambda: deque(maxlen=DURATION_WINDOW))


class ProgressTracker:
    def __init__(
        self,
        total_sections: int,
        dimension_names: list[str],
        global_dimensions: Optional[set[str]] = None,
        on_progress: Optional[Callable[[ProgressUpdate], None]] = None,
        update_every: int = 1,
        cost_calculator: Optional[CostCalculator] = None,
    ):
        self.start_time = time.time()
        self.total_sections = total_sections
        self.global_dimensions = set(global_dimensions or ())
        self.on_progress = on_progress
        self.update_every = max(1, update_every)
        self.cost_calculator = cost_calculator
        self.completed_ops = 0
        self.current_dimension = ""
        self.current_section = 0
        self._updates = 0
        self._dims: dict[str, _DimState] = {name: _DimState() for name in dimension_names}

    def record(
        self,
        dimension: str,
        section_index: int,
        result: DimensionResult,
        duration: float,
    ) -> None:
        """Record one finished execution. ``duration`` is in seconds."""
        dim = self._dims.get(dimension)
        if dim is None:
            return

        self.current_dimension = dimension
        self.current_section = section_index
        self.completed_ops += 1

        if result.is_skipped or result.is_cached:
            dim.skipped += 1
        elif result.is_error:
            dim.failed += 1
        else:
            dim.completed += 1

        dim.cost += self._cost_of(result)
        if not (result.is_skipped or result.is_cached):
            dim.durations.append(duration)

        self._updates += 1
        if self._updates % self.update_every == 0:
            self._emit()

    def update_total_sections(self, total: int) -> None:
        """Section count changed after a reshape.

        Dimensions that already ran keep the section count they ran against;
        only dimensions still to come are measured against the new one.
        """
        for name, dim in self._dims.items():
            if dim.total is None and (dim.completed or dim.failed or dim.skipped):
                dim.total = self._dim_total(name)
        self.total_sections = total
        self._emit()

    def get_progress(self) -> ProgressUpdate:
        elapsed = time.time() - self.start_time
        total = sum(self._dim_total(name) for name in self._dims)
        total_cost = sum(d.cost for d in self._dims.values())

        remaining = max(total - self.completed_ops, 0)
        avg_cost = total_cost / self.completed_ops if self.completed_ops else 0.0
        rate = self.completed_ops / elapsed if elapsed > 0 else 0.0

        dimensions: dict[str, DimensionProgress] = {}
        for name, dim in self._dims.items():
            dim_total = self._dim_total(name)
            processed = dim.completed + dim.skipped
            dim_remaining = max(dim_total - processed, 0)
            avg_duration = sum(dim.durations) / len(dim.durations) if dim.durations else 0.0
            avg_dim_cost = dim.cost / processed if processed else 0.0
            dimensions[name] = DimensionProgress(
                completed=dim.completed,
                failed=dim.failed,
                skipped=dim.skipped,
                total=dim_total,
                percent=round(processed / dim_total * 100, 1) if dim_total else 0.0,
                cost=round(dim.cost, 3),
                estimated_cost=round(dim.cost + dim_remaining * avg_dim_cost, 3),
                eta_seconds=round(dim_remaining * avg_duration),
            )

        return ProgressUpdate(
            completed=self.completed_ops,
            total=total,
            percent=round(self.completed_ops / total * 100, 1) if total else 0.0,
            cost=round(total_cost, 3),
            estimated_cost=round(total_cost + remaining * avg_cost, 3),
            elapsed_seconds=round(elapsed),
            eta_seconds=round(remaining / rate) if rate > 0 else 0,
            current_dimension=self.current_dimension,
            current_section=self.current_section,
            dimensions=dimensions,
        )

    def _dim_total(self, name: str) -> int:
        frozen = self._dims[name].total
        if frozen is not None:
            return frozen
        return 1 if name in self.global_dimensions else self.total_sections

    def _cost_of(self, result: DimensionResult) -> float:
        if result.metadata is not None and result.metadata.cost is not None:
            return result.metadata.cost
        if self.cost_calculator is None:
            return 0.0
        return self.cost_calculator.cost_of(result)

    def _emit(self) -> None:
        if self.on_progress is None:
            return
        try:
            self.on_progress(self.get_progress())
        except Exception as e:
            logger.warning(f"on_progress callback failed: {e}", exc_info=True)
