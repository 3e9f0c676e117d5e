from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, TypeVar

from tqdm import tqdm

__all__ = [
    "configure",
    "set_verbose",
    "set_progress",
    "get_config",
    "progress_iter",
    "PipelineStage",
    "PipelineProgress",
    "ProgressReporter",
]

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass
class _BaseConfig:
    verbose: bool = False
    progress: bool = False


_CONFIG = _BaseConfig()


def configure(*, verbose: bool | None = None, progress: bool | None = None) -> None:
    """Configure progress messages and progress bars for pipeline runs."""
    if verbose is not None:
        _CONFIG.verbose = bool(verbose)
    if progress is not None:
        _CONFIG.progress = bool(progress)


def set_verbose(value: bool) -> None:
    """Enable or disable logging of every progress notification."""
    _CONFIG.verbose = bool(value)


def set_progress(value: bool) -> None:
    """Enable or disable the frame sampling progress bar."""
    _CONFIG.progress = bool(value)


def get_config() -> _BaseConfig:
    """Return the current configuration."""
    return _CONFIG


def progress_iter(
    iterable: Iterable[T],
    *,
    desc: str | None = None,
    total: int | None = None,
) -> Iterable[T]:
    """Return an iterator with an optional progress bar."""
    if _CONFIG.progress:
        return tqdm(iterable, desc=desc, total=total)
    return iterable


class PipelineStage(str, Enum):
    SAMPLING_FRAMES = "sampling-frames"
    SEGMENTING_SCENES = "segmenting-scenes"
    TRACKING_CHARACTERS = "tracking-characters"
    DETECTING_MOMENTS = "detecting-moments"
    DONE = "done"
    ERROR = "error"


_STAGE_ORDER: tuple[PipelineStage, ...] = (
    PipelineStage.SAMPLING_FRAMES,
    PipelineStage.SEGMENTING_SCENES,
    PipelineStage.TRACKING_CHARACTERS,
    PipelineStage.DETECTING_MOMENTS,
    PipelineStage.DONE,
)


@dataclass(frozen=True)
class PipelineProgress:
    """A single progress notification.

    Attributes:
        stage: Current pipeline stage
        stage_index: Position of the stage among the working stages
        total_stages: Number of working stages (excludes ``done``)
        stage_progress: Progress within the current stage (0-100)
        message: Human-readable status
    """

    stage: PipelineStage
    stage_index: int
    total_stages: int
    stage_progress: int
    message: str

    @property
    def overall_progress(self) -> float:
        """Progress across the whole run (0-100)."""
        if self.stage == PipelineStage.DONE:
            return 100.0
        return (self.stage_index + self.stage_progress / 100) / self.total_stages * 100


ProgressCallback = Callable[[PipelineProgress], None]


class ProgressReporter:
    """Emits progress notifications that only ever move forward.

    Notifications that would move backwards (an earlier stage, or a lower
    percentage within the same stage) are dropped. The ``error`` stage is
    terminal and always delivered.
    """

    def __init__(self, callback: ProgressCallback | None = None):
        self.callback = callback
        self.total_stages = len(_STAGE_ORDER) - 1
        self._last: PipelineProgress | None = None

    @property
    def last(self) -> PipelineProgress | None:
        return self._last

    def report(self, stage: PipelineStage, stage_progress: int, message: str) -> None:
        stage_progress = max(0, min(100, int(stage_progress)))

        if stage == PipelineStage.ERROR:
            stage_index = self._last.stage_index if self._last else 0
        else:
            stage_index = _STAGE_ORDER.index(stage)
            if self._last is not None:
                if self._last.stage in (PipelineStage.DONE, PipelineStage.ERROR):
                    return
                if (stage_index, stage_progress) < (self._last.stage_index, self._last.stage_progress):
                    return

        event = PipelineProgress(
            stage=stage,
            stage_index=stage_index,
            total_stages=self.total_stages,
            stage_progress=stage_progress,
            message=message,
        )
        self._last = event

        if _CONFIG.verbose:
            logger.info("[%s %d%%] %s", stage.value, stage_progress, message)
        if self.callback is not None:
            self.callback(event)

    def done(self, message: str = "Analysis complete!") -> None:
        self.report(PipelineStage.DONE, 100, message)

    def error(self, message: str) -> None:
        self.report(PipelineStage.ERROR, 0, message)
