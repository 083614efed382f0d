"""Per-run mutable state.

RunState lives for exactly one DagEngine.process() call. Item results are
kept in an index-addressed table whose length always equals the current
section count; replacing sections resets it entirely.
"""

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

from dimflow.schemas import DimensionResult, SectionData, SectionResults


class SectionResultsTable:
    """``index -> {dimension -> result}``. Reads return copies."""

    def __init__(self, count: int = 0):
        self._rows: list[dict[str, DimensionResult]] = [{} for _ in range(count)]

    def __len__(self) -> int:
        return len(self._rows)

    def get(self, index: int) -> dict[str, DimensionResult]:
        return dict(self._rows[index])

    def get_result(self, index: int, dimension: str) -> Optional[DimensionResult]:
        return self._rows[index].get(dimension)

    def set(self, index: int, dimension: str, result: DimensionResult) -> None:
        self._rows[index][dimension] = result

    def reset(self, count: int) -> None:
        self._rows = [{} for _ in range(count)]

    def snapshot(self) -> list[dict[str, DimensionResult]]:
        return [dict(row) for row in self._rows]


@dataclass
class RunState:
    process_id: str
    sections: list[SectionData]
    start_time: float = field(default_factory=time.time)
    metadata: Optional[dict[str, Any]] = None
    global_results: dict[str, DimensionResult] = field(default_factory=dict)
    section_results: SectionResultsTable = field(default_factory=SectionResultsTable)

    @classmethod
    def create(
        cls,
        sections: list[SectionData],
        process_id: Optional[str] = None,
    ) -> "RunState":
        return cls(
            process_id=process_id or str(uuid.uuid4()),
            sections=list(sections),
            section_results=SectionResultsTable(len(sections)),
        )

    def replace_sections(self, sections: list[SectionData]) -> None:
        """Swap in a new batch. Prior item results no longer line up, so drop them."""
        self.sections = list(sections)
        self.section_results.reset(len(self.sections))

    def elapsed(self) -> float:
        return time.time() - self.start_time

    def build_section_results(self) -> list[SectionResults]:
        return [
            SectionResults(section=section, results=self.section_results.get(i))
            for i, section in enumerate(self.sections)
        ]
