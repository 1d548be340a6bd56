"""Tests for the debounced change queue."""

from __future__ import annotations

import threading
import time
from collections import Counter

import pytest

from docask.index.debounce import ChangeDebouncer, ChangeOperation, PendingChange
from fakes import TimerRecorder


def _debouncer(batches, timers, debounce_ms=100, batch_max=20):
    return ChangeDebouncer(
        on_batch=batches.append,
        debounce_ms=debounce_ms,
        batch_max=batch_max,
        timer_factory=timers,
    )


def test_events_coalesce_per_path_and_keep_last_classification():
    batches, timers = [], TimerRecorder()
    debouncer = _debouncer(batches, timers)

    debouncer.record("created", "docs/a.md")
    debouncer.record("modified", "docs/a.md")
    debouncer.record("deleted", "docs/a.md")

    assert len(timers.live) == 1
    assert timers.live[0].interval == pytest.approx(0.1)
    assert timers.live[0].daemon is True
    assert debouncer.state == "accumulating"

    timers.live[0].fire()

    assert batches == [[PendingChange(ChangeOperation.REMOVE, "docs/a.md")]]
    assert debouncer.state == "idle"


def test_every_event_restarts_the_quiet_interval():
    batches, timers = [], TimerRecorder()
    debouncer = _debouncer(batches, timers)

    debouncer.record("modified", "docs/a.md")
    first = timers.timers[0]
    debouncer.record("modified", "docs/b.md")

    assert first.cancelled
    assert len(timers.live) == 1 and timers.live[0] is not first


def test_stale_timer_callback_does_nothing():
    batches, timers = [], TimerRecorder()
    debouncer = _debouncer(batches, timers)

    debouncer.record("modified", "docs/a.md")
    stale = timers.timers[0]
    debouncer.record("modified", "docs/b.md")

    stale.fire()
    assert batches == []

    timers.live[0].fire()
    assert [c.path for c in batches[0]] == ["docs/a.md", "docs/b.md"]


def test_non_indexable_paths_are_dropped():
    batches, timers = [], TimerRecorder()
    debouncer = _debouncer(batches, timers)

    assert debouncer.record("modified", "assets/logo.png") is False
    assert debouncer.pending() == []
    assert timers.timers == []
    assert debouncer.state == "idle"


def test_unknown_event_kind_is_rejected():
    debouncer = _debouncer([], TimerRecorder())

    with pytest.raises(ValueError):
        debouncer.record("renamed", "docs/a.md")


def test_batches_are_bounded_and_drain_oldest_first():
    batches, timers = [], TimerRecorder()
    debouncer = _debouncer(batches, timers, batch_max=2)
    for name in "abcde":
        debouncer.record("modified", f"docs/{name}.md")

    while timers.live:
        timers.live[0].fire()

    assert [[c.path for c in batch] for batch in batches] == [
        ["docs/a.md", "docs/b.md"],
        ["docs/c.md", "docs/d.md"],
        ["docs/e.md"],
    ]
    assert debouncer.pending() == []
    assert debouncer.state == "idle"


def test_repeat_event_moves_path_to_the_back():
    batches, timers = [], TimerRecorder()
    debouncer = _debouncer(batches, timers)

    debouncer.record("modified", "docs/a.md")
    debouncer.record("modified", "docs/b.md")
    debouncer.record("modified", "docs/a.md")

    assert [c.path for c in debouncer.pending()] == ["docs/b.md", "docs/a.md"]


def test_events_after_a_drain_start_a_new_cycle():
    batches, timers = [], TimerRecorder()
    debouncer = _debouncer(batches, timers)

    debouncer.record("modified", "docs/a.md")
    timers.live[0].fire()
    debouncer.record("modified", "docs/b.md")

    assert len(timers.live) == 1
    timers.live[0].fire()
    assert [[c.path for c in batch] for batch in batches] == [["docs/a.md"], ["docs/b.md"]]


def test_flush_drains_everything_immediately():
    batches, timers = [], TimerRecorder()
    debouncer = _debouncer(batches, timers, batch_max=2)
    for name in "abc":
        debouncer.record("created", f"docs/{name}.md")

    assert debouncer.flush() == 3
    assert [len(batch) for batch in batches] == [2, 1]
    assert timers.live == []


def test_cancel_discards_pending_changes(caplog):
    batches, timers = [], TimerRecorder()
    debouncer = _debouncer(batches, timers)
    debouncer.record("modified", "docs/a.md")
    pending_timer = timers.live[0]

    with caplog.at_level("WARNING", logger="docask.index.debounce"):
        assert debouncer.cancel() == 1

    pending_timer.fire()
    assert batches == []
    assert "Discarded 1 queued change" in caplog.text


def test_handler_errors_do_not_break_the_queue(caplog):
    timers = TimerRecorder()
    seen = []

    def explode(batch):
        seen.append(batch)
        raise RuntimeError("handler broke")

    debouncer = ChangeDebouncer(explode, debounce_ms=50, batch_max=5, timer_factory=timers)
    debouncer.record("modified", "docs/a.md")
    timers.live[0].fire()
    debouncer.record("modified", "docs/b.md")
    timers.live[0].fire()

    assert len(seen) == 2
    assert "Batch handler failed" in caplog.text


@pytest.mark.parametrize("kwargs", [{"debounce_ms": 0}, {"batch_max": 0}])
def test_rejects_non_positive_settings(kwargs):
    params = {"on_batch": lambda batch: None, "debounce_ms": 100, "batch_max": 5}
    params.update(kwargs)
    with pytest.raises(ValueError):
        ChangeDebouncer(**params)


def test_real_timer_releases_batch_after_quiet_period():
    released = threading.Event()
    batches = []

    def on_batch(batch):
        batches.append(batch)
        released.set()

    debouncer = ChangeDebouncer(on_batch, debounce_ms=20, batch_max=10)
    debouncer.record("created", "docs/a.md")
    debouncer.record("modified", "docs/b.md")

    assert released.wait(timeout=5.0)
    assert [c.path for c in batches[0]] == ["docs/a.md", "docs/b.md"]


def test_concurrent_events_and_timer_drains_deliver_each_path_once():
    per_thread, threads = 150, 2
    total = per_thread * threads
    lock = threading.Lock()
    seen = []
    sizes = []
    done = threading.Event()

    def on_batch(batch):
        with lock:
            sizes.append(len(batch))
            seen.extend(change.path for change in batch)
            if len(seen) >= total:
                done.set()

    debouncer = ChangeDebouncer(on_batch, debounce_ms=1, batch_max=4)

    def produce(worker: int):
        for index in range(per_thread):
            debouncer.record("modified", f"docs/{worker}/{index}.md")
            if index % 25 == 0:
                time.sleep(0.002)

    producers = [threading.Thread(target=produce, args=(n,)) for n in range(threads)]
    for thread in producers:
        thread.start()
    for thread in producers:
        thread.join(timeout=10.0)

    assert done.wait(timeout=10.0)
    # Leave room for a duplicate drain to surface.
    time.sleep(0.05)
    with lock:
        counts = Counter(seen)
        assert max(sizes) <= 4
    assert len(counts) == total
    assert set(counts.values()) == {1}
    assert debouncer.pending() == []
