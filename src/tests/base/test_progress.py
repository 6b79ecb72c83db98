import threading

import pytest

from videoinsight.base import progress
from videoinsight.base.progress import ProgressEvent, ProgressQueue, ProgressReporter, progress_iter


class TestProgressReporter:
    def test_percent_never_decreases(self):
        events = []
        reporter = ProgressReporter(lambda p, m: events.append(p))
        for value in (0, 10, 5, 40, 39, 60):
            reporter.report(value, "step")

        assert events == [0, 10, 10, 40, 40, 60]

    def test_hundred_only_from_finish(self):
        events = []
        reporter = ProgressReporter(lambda p, m: events.append((p, m)))
        reporter.report(100, "almost")
        reporter.finish("done")
        reporter.finish("done again")
        reporter.report(50, "late")

        assert events == [(99, "almost"), (100, "done")]
        assert reporter.finished

    def test_band_maps_fractions(self):
        events = []
        reporter = ProgressReporter(lambda p, m: events.append(p))
        band = reporter.band(60, 80)
        band.enter("start")
        band(0.5, "half")
        band.update(2.0, "clamped")

        assert events == [60, 70, 80]

    def test_fail_closes_without_hundred(self):
        events = []
        channel = ProgressQueue()
        reporter = ProgressReporter(lambda p, m: events.append(p), channel)
        reporter.report(30, "working")
        reporter.fail("broken")
        reporter.finish("done")
        reporter.report(60, "late")

        assert events == [30]
        assert channel.drain() == [ProgressEvent(30, "working"), ProgressEvent(30, "broken", failed=True)]
        assert reporter.finished

    def test_invalid_band(self):
        with pytest.raises(ValueError):
            ProgressReporter().band(80, 60)

    def test_fans_out_to_every_subscriber(self):
        first, second = [], []
        reporter = ProgressReporter(lambda p, m: first.append(p), None)
        reporter.subscribe(lambda p, m: second.append(p))
        reporter.report(12.6, "x")

        assert first == [13]
        assert second == [13]


class TestProgressQueue:
    def test_drain(self):
        channel = ProgressQueue()
        channel(10, "a")
        channel(20, "b")

        assert channel.drain() == [ProgressEvent(10, "a"), ProgressEvent(20, "b")]
        assert channel.drain() == []

    def test_iter_events_stops_at_hundred(self):
        channel = ProgressQueue()
        reporter = ProgressReporter(channel)

        def produce():
            for value in (5, 50, 90):
                reporter.report(value, "working")
            reporter.finish("done")

        worker = threading.Thread(target=produce)
        worker.start()
        received = [event.percent for event in channel.iter_events(timeout=5)]
        worker.join()

        assert received == [5, 50, 90, 100]

    def test_iter_events_stops_at_failure(self):
        channel = ProgressQueue()
        reporter = ProgressReporter(channel)
        reporter.report(55, "extracting")
        reporter.fail("cannot open")

        events = list(channel.iter_events(timeout=5))
        assert [event.percent for event in events] == [55, 55]
        assert events[-1].failed
        assert events[-1].message == "cannot open"


def test_progress_iter_passthrough_when_disabled():
    progress.set_progress(False)
    items = [1, 2, 3]
    assert progress_iter(items, desc="x") is items


def test_progress_iter_wraps_with_tqdm_when_enabled():
    progress.configure(progress=True)
    try:
        assert list(progress_iter([1, 2, 3], desc="x")) == [1, 2, 3]
        assert progress.get_config().progress
    finally:
        progress.configure(progress=False)
