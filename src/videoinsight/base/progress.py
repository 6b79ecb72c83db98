from __future__ import annotations

import logging
import queue
from dataclasses import dataclass
from typing import Callable, Iterable, TypeVar

from tqdm import tqdm

__all__ = [
    "configure",
    "set_progress",
    "get_config",
    "progress_iter",
    "ProgressCallback",
    "FractionCallback",
    "ProgressEvent",
    "ProgressReporter",
    "ProgressBand",
    "ProgressQueue",
]

T = TypeVar("T")

ProgressCallback = Callable[[int, str], None]
FractionCallback = Callable[[float, str], None]

logger = logging.getLogger(__name__)


@dataclass
class _BaseConfig:
    progress: bool = False


_CONFIG = _BaseConfig()


def configure(*, progress: bool | None = None) -> None:
    """Configure console progress bar behavior."""
    if progress is not None:
        _CONFIG.progress = bool(progress)


def set_progress(value: bool) -> None:
    """Enable or disable progress bars in long loops."""
    _CONFIG.progress = bool(value)


def get_config() -> _BaseConfig:
    """Return the current base configuration."""
    return _CONFIG


def progress_iter(
    iterable: Iterable[T],
    *,
    desc: str | None = None,
    total: int | None = None,
) -> Iterable[T]:
    """Return an iterator with an optional progress bar."""
    if _CONFIG.progress:
        return tqdm(iterable, desc=desc, total=total, leave=False)
    return iterable


@dataclass(frozen=True)
class ProgressEvent:
    percent: int
    message: str
    failed: bool = False


class ProgressReporter:
    """Fan-out channel for `(percent, message)` events of one analysis run.

    Percentages never decrease: a value lower than the last emitted one is
    raised to it. Only `finish` may emit 100, and it does so once.
    `fail` closes the channel without emitting 100; callbacks that define a
    `fail(percent, message)` method are told about it.
    """

    def __init__(self, *callbacks: ProgressCallback | None) -> None:
        self._callbacks: list[ProgressCallback] = [cb for cb in callbacks if cb is not None]
        self._percent = 0
        self._started = False
        self._finished = False

    @property
    def percent(self) -> int:
        return self._percent

    @property
    def finished(self) -> bool:
        return self._finished

    def subscribe(self, callback: ProgressCallback) -> None:
        self._callbacks.append(callback)

    def report(self, percent: float, message: str) -> None:
        if self._finished:
            logger.debug("Ignoring progress after completion: %s", message)
            return
        value = min(max(int(round(percent)), 0), 99)
        if self._started:
            value = max(value, self._percent)
        self._emit(value, message)

    def finish(self, message: str) -> None:
        if self._finished:
            return
        self._finished = True
        self._emit(100, message)

    def fail(self, message: str) -> None:
        if self._finished:
            return
        self._finished = True
        logger.debug("Progress stopped at %3d%%: %s", self._percent, message)
        for callback in self._callbacks:
            on_fail = getattr(callback, "fail", None)
            if on_fail is not None:
                on_fail(self._percent, message)

    def band(self, start: float, end: float) -> ProgressBand:
        return ProgressBand(self, start, end)

    def _emit(self, value: int, message: str) -> None:
        self._started = True
        self._percent = value
        logger.debug("Progress %3d%% %s", value, message)
        for callback in self._callbacks:
            callback(value, message)


class ProgressBand:
    """Maps a stage-local fraction in [0, 1] onto a fixed percent range."""

    def __init__(self, reporter: ProgressReporter, start: float, end: float) -> None:
        if not 0 <= start <= end <= 100:
            raise ValueError(f"Invalid progress band: {start}-{end}")
        self.reporter = reporter
        self.start = start
        self.end = end

    def update(self, fraction: float, message: str) -> None:
        fraction = min(max(fraction, 0.0), 1.0)
        self.reporter.report(self.start + (self.end - self.start) * fraction, message)

    def enter(self, message: str) -> None:
        self.update(0.0, message)

    def complete(self, message: str) -> None:
        self.update(1.0, message)

    __call__ = update


class ProgressQueue:
    """Progress callback that forwards events into a `queue.Queue`.

    Lets another thread consume events while an analysis runs in a worker.
    """

    def __init__(self, maxsize: int = 0) -> None:
        self.queue: queue.Queue[ProgressEvent] = queue.Queue(maxsize=maxsize)

    def __call__(self, percent: int, message: str) -> None:
        self.queue.put(ProgressEvent(percent=percent, message=message))

    def fail(self, percent: int, message: str) -> None:
        self.queue.put(ProgressEvent(percent=percent, message=message, failed=True))

    def drain(self) -> list[ProgressEvent]:
        """Return every event currently buffered without blocking."""
        events: list[ProgressEvent] = []
        while True:
            try:
                events.append(self.queue.get_nowait())
            except queue.Empty:
                return events

    def iter_events(self, timeout: float | None = None) -> Iterable[ProgressEvent]:
        """Yield events until the 100% event or a failure event has been seen."""
        while True:
            event = self.queue.get(timeout=timeout)
            yield event
            if event.failed or event.percent >= 100:
                return
