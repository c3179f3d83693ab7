"""Stage and percentage model shared by the crawl and analysis coordinators.

A reporter is owned by exactly one coordinator. Each ``update`` validates the
ordering invariants, derives an immutable snapshot, records it, and hands it
to the registered listeners. Backward moves are logic errors and raise
:class:`~geocrawl.core.errors.ProgressOrderError`.

Each stage owns a band of the 0-100 range and ``current/total`` is mapped
into that band. Counters may reset between stages (the crawl counter restarts
when crawling begins) while the percentage keeps rising, and only the
``completed`` stage reaches 100.

Example:
    >>> reporter = CrawlProgressReporter(total=2)
    >>> reporter.update(CrawlStage.EXTRACTING, 0).percentage
    0.0
    >>> reporter.update(CrawlStage.CRAWLING, 1).percentage
    57.5
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

from geocrawl.core.errors import ProgressOrderError

logger = logging.getLogger(__name__)

StageT = TypeVar("StageT", bound=Enum)
SnapshotT = TypeVar("SnapshotT")


class CrawlStage(str, Enum):
    """Crawl batch stages, in execution order."""

    EXTRACTING = "extracting"
    CHECKING_ROBOTS = "checking_robots"
    CRAWLING = "crawling"
    COMPLETED = "completed"


class AnalysisStage(str, Enum):
    """Variation analysis stages, in execution order."""

    VARIATIONS = "variations"
    LLM_ANALYSIS = "llm_analysis"
    COMPLETED = "completed"


CRAWL_STAGE_BANDS: dict[CrawlStage, tuple[float, float]] = {
    CrawlStage.EXTRACTING: (0.0, 5.0),
    CrawlStage.CHECKING_ROBOTS: (5.0, 20.0),
    CrawlStage.CRAWLING: (20.0, 95.0),
    CrawlStage.COMPLETED: (100.0, 100.0),
}

ANALYSIS_STAGE_BANDS: dict[AnalysisStage, tuple[float, float]] = {
    AnalysisStage.VARIATIONS: (0.0, 5.0),
    AnalysisStage.LLM_ANALYSIS: (5.0, 95.0),
    AnalysisStage.COMPLETED: (100.0, 100.0),
}


def compute_percentage(
    current: int, total: int, band: tuple[float, float] = (0.0, 100.0)
) -> float:
    """Map ``current/total`` into ``band`` and clamp the result to [0, 100].

    Args:
        current: Units finished in the stage
        total: Units in the stage; an empty stage counts as finished
        band: (start, end) percentage range owned by the stage

    Returns:
        Percentage rounded to two decimals
    """
    start, end = band
    fraction = 1.0 if total <= 0 else min(max(current / total, 0.0), 1.0)
    percentage = start + (end - start) * fraction
    return round(min(max(percentage, 0.0), 100.0), 2)


@dataclass(frozen=True)
class CrawlProgress:
    """Snapshot of crawl batch progress."""

    stage: CrawlStage
    current: int
    total: int
    percentage: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage.value,
            "current": self.current,
            "total": self.total,
            "percentage": self.percentage,
        }


@dataclass(frozen=True)
class BatchAnalysisProgress:
    """Snapshot of variation analysis progress.

    Attributes:
        stage: Current stage
        current_variation: 1-based position of the query being analyzed
        total_variations: Number of queries in the batch
        current_llm: Engine currently in flight, None when idle
        percentage: Derived from completed (query x engine) cells
        completed_cells: Finished (query x engine) calls
        total_cells: All (query x engine) calls in the batch
    """

    stage: AnalysisStage
    current_variation: int
    total_variations: int
    current_llm: str | None
    percentage: float
    completed_cells: int = 0
    total_cells: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage.value,
            "currentVariation": self.current_variation,
            "totalVariations": self.total_variations,
            "currentLLM": self.current_llm,
            "percentage": self.percentage,
        }


class _StageTracker(Generic[StageT, SnapshotT]):
    """Ordering checks, snapshot history and listener fan-out."""

    def __init__(
        self,
        stages: Sequence[StageT],
        bands: Mapping[StageT, tuple[float, float]],
        total: int,
        reset_stages: Iterable[StageT] = (),
        listeners: Iterable[Callable[[SnapshotT], None]] = (),
    ) -> None:
        if total < 0:
            raise ValueError("total must not be negative")
        self._order = {stage: index for index, stage in enumerate(stages)}
        self._bands = bands
        self._reset_stages = frozenset(reset_stages)
        self._listeners = list(listeners)
        self.total = total
        self._stage: StageT | None = None
        self._current = 0
        self._percentage = 0.0
        self._snapshots: list[SnapshotT] = []

    @property
    def stage(self) -> StageT | None:
        return self._stage

    @property
    def latest(self) -> SnapshotT | None:
        """Most recent snapshot, for callers that poll."""
        return self._snapshots[-1] if self._snapshots else None

    @property
    def snapshots(self) -> tuple[SnapshotT, ...]:
        return tuple(self._snapshots)

    def add_listener(self, listener: Callable[[SnapshotT], None]) -> None:
        self._listeners.append(listener)

    def _advance(self, stage: StageT, current: int, total: int) -> float:
        if stage not in self._order:
            raise ProgressOrderError(f"Unknown stage: {stage!r}")
        if current < 0 or current > total:
            raise ProgressOrderError(
                f"Counter {current} outside 0..{total} in stage {stage.value}"
            )

        if self._stage is not None:
            previous = self._order[self._stage]
            upcoming = self._order[stage]
            if upcoming < previous:
                raise ProgressOrderError(
                    f"Stage moved backwards: {self._stage.value} -> {stage.value}"
                )
            resets = upcoming > previous and stage in self._reset_stages
            if current < self._current and not resets:
                raise ProgressOrderError(
                    f"Counter moved backwards in {stage.value}: "
                    f"{self._current} -> {current}"
                )

        if stage is self._terminal_stage() and current != total:
            raise ProgressOrderError(
                f"Completed with {current} of {total} units finished"
            )

        percentage = compute_percentage(current, total, self._bands[stage])
        if percentage < self._percentage:
            raise ProgressOrderError(
                f"Percentage moved backwards: {self._percentage} -> {percentage}"
            )

        self._stage = stage
        self._current = current
        self._percentage = percentage
        return percentage

    def _terminal_stage(self) -> StageT:
        return max(self._order, key=self._order.__getitem__)

    def _emit(self, snapshot: SnapshotT) -> SnapshotT:
        self._snapshots.append(snapshot)
        for listener in self._listeners:
            try:
                listener(snapshot)
            except Exception:  # noqa: BLE001
                # Observers never break the batch they observe
                logger.exception("Progress listener failed")
        return snapshot


class CrawlProgressReporter(_StageTracker[CrawlStage, CrawlProgress]):
    """Progress reporter for one crawl batch.

    The counter restarts when the batch enters ``crawling``; everywhere else
    it only moves forward.

    Args:
        total: Number of URLs in the batch
        listeners: Callables receiving each CrawlProgress snapshot
    """

    def __init__(
        self,
        total: int,
        listeners: Iterable[Callable[[CrawlProgress], None]] = (),
    ) -> None:
        super().__init__(
            stages=list(CrawlStage),
            bands=CRAWL_STAGE_BANDS,
            total=total,
            reset_stages=(CrawlStage.CRAWLING,),
            listeners=listeners,
        )

    def update(self, stage: CrawlStage, current: int) -> CrawlProgress:
        """Record a unit transition and emit the resulting snapshot.

        Raises:
            ProgressOrderError: If the stage or counter would move backwards
        """
        percentage = self._advance(stage, current, self.total)
        return self._emit(
            CrawlProgress(
                stage=stage,
                current=current,
                total=self.total,
                percentage=percentage,
            )
        )


class AnalysisProgressReporter(_StageTracker[AnalysisStage, BatchAnalysisProgress]):
    """Progress reporter for one variation analysis batch.

    Percentage follows finished (query x engine) cells so a partially
    analyzed query contributes fractional progress.

    Args:
        total_variations: Number of queries in the batch
        total_engines: Number of engines called per query
        listeners: Callables receiving each BatchAnalysisProgress snapshot
    """

    def __init__(
        self,
        total_variations: int,
        total_engines: int,
        listeners: Iterable[Callable[[BatchAnalysisProgress], None]] = (),
    ) -> None:
        if total_engines < 0:
            raise ValueError("total_engines must not be negative")
        super().__init__(
            stages=list(AnalysisStage),
            bands=ANALYSIS_STAGE_BANDS,
            total=total_variations * total_engines,
            listeners=listeners,
        )
        self.total_variations = total_variations
        self.total_engines = total_engines
        self._current_variation = 0

    def update(
        self,
        stage: AnalysisStage,
        current_variation: int,
        completed_cells: int,
        current_llm: str | None = None,
    ) -> BatchAnalysisProgress:
        """Record a cell transition and emit the resulting snapshot.

        Raises:
            ProgressOrderError: If the stage, query position or cell counter
                would move backwards
        """
        if not 0 <= current_variation <= self.total_variations:
            raise ProgressOrderError(
                f"Query position {current_variation} outside "
                f"0..{self.total_variations}"
            )
        if current_variation < self._current_variation:
            raise ProgressOrderError(
                f"Query position moved backwards: "
                f"{self._current_variation} -> {current_variation}"
            )
        if stage is AnalysisStage.COMPLETED:
            current_llm = None

        percentage = self._advance(stage, completed_cells, self.total)
        self._current_variation = current_variation
        return self._emit(
            BatchAnalysisProgress(
                stage=stage,
                current_variation=current_variation,
                total_variations=self.total_variations,
                current_llm=current_llm,
                percentage=percentage,
                completed_cells=completed_cells,
                total_cells=self.total,
            )
        )
