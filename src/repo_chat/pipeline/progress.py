"""Progress tracking for the indexing pipeline."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Callable

from repo_chat.core.types import PipelineStage

logger = logging.getLogger(__name__)

STAGE_WEIGHTS = {
    PipelineStage.RESOLVING: 5,
    PipelineStage.FETCHING_TREE: 15,
    PipelineStage.FETCHING_CONTENT: 60,
    PipelineStage.COMPUTING_STATS: 5,
    PipelineStage.PERSISTING: 15,
}

STAGE_ORDER = [
    PipelineStage.RESOLVING,
    PipelineStage.FETCHING_TREE,
    PipelineStage.FETCHING_CONTENT,
    PipelineStage.COMPUTING_STATS,
    PipelineStage.PERSISTING,
    PipelineStage.COMPLETED,
    PipelineStage.FAILED,
]


@dataclass
class StageProgress:
    """Progress for a single stage."""

    stage: PipelineStage
    current: int = 0
    total: int = 0
    message: str = ""

    @property
    def percentage(self) -> float:
        if self.total == 0:
            return 0.0
        return (self.current / self.total) * 100


@dataclass
class PipelineProgress:
    """Overall progress of one indexing run."""

    current_stage: PipelineStage = PipelineStage.RESOLVING
    stages: dict[PipelineStage, StageProgress] = field(default_factory=dict)
    start_time: datetime | None = None
    end_time: datetime | None = None
    error_message: str | None = None

    files_listed: int = 0
    files_fetched: int = 0
    files_skipped: int = 0

    @property
    def is_running(self) -> bool:
        return self.start_time is not None and self.current_stage not in (
            PipelineStage.COMPLETED,
            PipelineStage.FAILED,
        )

    @property
    def is_complete(self) -> bool:
        return self.current_stage == PipelineStage.COMPLETED

    @property
    def has_error(self) -> bool:
        return self.current_stage == PipelineStage.FAILED

    @property
    def elapsed_time(self) -> float:
        if self.start_time is None:
            return 0.0
        end = self.end_time or datetime.now()
        return (end - self.start_time).total_seconds()

    @property
    def overall_percentage(self) -> float:
        if self.is_complete:
            return 100.0

        completed_weight = 0.0
        for stage, weight in STAGE_WEIGHTS.items():
            progress = self.stages.get(stage)
            if progress and progress.total > 0 and not self._is_stage_complete(stage):
                completed_weight += weight * min(progress.current / progress.total, 1.0)
            elif self._is_stage_complete(stage):
                completed_weight += weight

        return min(completed_weight, 100.0)

    def _is_stage_complete(self, stage: PipelineStage) -> bool:
        if self.current_stage == PipelineStage.FAILED:
            return False
        return STAGE_ORDER.index(stage) < STAGE_ORDER.index(self.current_stage)


class ProgressTracker:
    """Tracks and reports pipeline progress with thread-safety."""

    def __init__(self):
        self._progress = PipelineProgress()
        self._callbacks: list[Callable[[PipelineProgress], None]] = []
        self._lock = Lock()

    @property
    def progress(self) -> PipelineProgress:
        with self._lock:
            return self._progress

    def add_callback(self, callback: Callable[[PipelineProgress], None]) -> None:
        with self._lock:
            self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[PipelineProgress], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def _notify(self) -> None:
        with self._lock:
            callbacks = self._callbacks.copy()
            progress = self._progress

        for callback in callbacks:
            try:
                callback(progress)
            except Exception as e:
                logger.warning(f"Progress callback failed: {e}", exc_info=True)

    def start(self) -> None:
        with self._lock:
            self._progress = PipelineProgress(
                current_stage=PipelineStage.RESOLVING,
                start_time=datetime.now(),
            )
        self._notify()

    def set_stage(self, stage: PipelineStage, total: int = 0, message: str = "") -> None:
        with self._lock:
            self._progress.current_stage = stage
            self._progress.stages[stage] = StageProgress(
                stage=stage,
                current=0,
                total=total,
                message=message,
            )
        self._notify()

    def update_stage(
        self,
        current: int,
        total: int | None = None,
        message: str | None = None,
    ) -> None:
        with self._lock:
            stage = self._progress.current_stage
            if stage in self._progress.stages:
                progress = self._progress.stages[stage]
                progress.current = current
                if total is not None:
                    progress.total = total
                if message is not None:
                    progress.message = message
        self._notify()

    def update_stats(self, **kwargs) -> None:
        with self._lock:
            for key, value in kwargs.items():
                if hasattr(self._progress, key):
                    setattr(self._progress, key, value)
        self._notify()

    def complete(self) -> None:
        with self._lock:
            self._progress.current_stage = PipelineStage.COMPLETED
            self._progress.end_time = datetime.now()
        self._notify()

    def error(self, message: str) -> None:
        with self._lock:
            self._progress.current_stage = PipelineStage.FAILED
            self._progress.error_message = message
            self._progress.end_time = datetime.now()
        self._notify()
