"""Debounced, path-keyed change queue that releases bounded batches."""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol

from .matcher import is_indexable

logger = logging.getLogger("docask.index.debounce")


class ChangeOperation(str, Enum):
    UPSERT = "upsert"
    REMOVE = "remove"


EVENT_OPERATIONS: Dict[str, ChangeOperation] = {
    "created": ChangeOperation.UPSERT,
    "modified": ChangeOperation.UPSERT,
    "add": ChangeOperation.UPSERT,
    "modify": ChangeOperation.UPSERT,
    "deleted": ChangeOperation.REMOVE,
    "remove": ChangeOperation.REMOVE,
}


@dataclass(frozen=True)
class PendingChange:
    operation: ChangeOperation
    path: str


class TimerHandle(Protocol):
    daemon: bool

    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], TimerHandle]


class ChangeDebouncer:
    """Collects change events and flushes them after a quiet interval.

    Every accepted event re-arms the timer, so a steady stream of edits keeps
    postponing the flush. Files are never picked up mid-edit; the price is
    unbounded latency while a burst lasts.

    The pending mapping, the timer handle and the generation counter are only
    touched under ``_lock``. A timer callback whose generation is no longer
    current does nothing, so cancelling a timer that has already started to
    fire cannot double-drain. Once a drain has popped its batch, new events
    start a fresh cycle.
    """

    def __init__(
        self,
        on_batch: Callable[[List[PendingChange]], None],
        debounce_ms: int,
        batch_max: int,
        accept: Callable[[str], bool] = is_indexable,
        timer_factory: TimerFactory = threading.Timer,
    ):
        if debounce_ms <= 0:
            raise ValueError("debounce_ms must be greater than zero")
        if batch_max <= 0:
            raise ValueError("batch_max must be greater than zero")
        self._on_batch = on_batch
        self.debounce_seconds = debounce_ms / 1000.0
        self.batch_max = batch_max
        self._accept = accept
        self._timer_factory = timer_factory

        self._lock = threading.Lock()
        self._pending: "OrderedDict[str, ChangeOperation]" = OrderedDict()
        self._timer: Optional[TimerHandle] = None
        self._generation = 0

    @property
    def state(self) -> str:
        with self._lock:
            if self._timer is not None:
                return "accumulating"
            return "idle"

    def record(self, event_kind: str, path: str) -> bool:
        """Queue one filesystem event. Returns False when it was dropped."""
        operation = EVENT_OPERATIONS.get(event_kind)
        if operation is None:
            raise ValueError(f"Unknown event kind: {event_kind!r}")
        if not self._accept(path):
            return False

        with self._lock:
            self._pending[path] = operation
            self._pending.move_to_end(path)
            self._arm_locked()
        logger.debug("Queued %s for %s", operation.value, path)
        return True

    def pending(self) -> List[PendingChange]:
        with self._lock:
            return [PendingChange(op, path) for path, op in self._pending.items()]

    def flush(self) -> int:
        """Drain everything queued right now, batch by batch. Returns the count."""
        with self._lock:
            self._disarm_locked()
            batches: List[List[PendingChange]] = []
            while self._pending:
                batches.append(self._pop_batch_locked())
        for batch in batches:
            self._dispatch(batch)
        return sum(len(batch) for batch in batches)

    def cancel(self) -> int:
        """Stop the timer and drop whatever is still queued."""
        with self._lock:
            self._disarm_locked()
            dropped = len(self._pending)
            self._pending.clear()
        if dropped:
            logger.warning("Discarded %d queued change(s) on shutdown", dropped)
        return dropped

    def _arm_locked(self) -> None:
        self._disarm_locked()
        generation = self._generation
        timer = self._timer_factory(
            self.debounce_seconds,
            lambda: self._on_timer(generation),
        )
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _disarm_locked(self) -> None:
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._timer = None
            if not self._pending:
                return
            batch = self._pop_batch_locked()
            if self._pending:
                # More than one batch worth queued; keep draining.
                self._arm_locked()
        self._dispatch(batch)

    def _pop_batch_locked(self) -> List[PendingChange]:
        batch: List[PendingChange] = []
        while self._pending and len(batch) < self.batch_max:
            path, operation = self._pending.popitem(last=False)
            batch.append(PendingChange(operation, path))
        return batch

    def _dispatch(self, batch: List[PendingChange]) -> None:
        logger.debug("Releasing batch of %d change(s)", len(batch))
        try:
            self._on_batch(batch)
        except Exception:
            logger.exception("Batch handler failed for %d change(s)", len(batch))


__all__ = [
    "ChangeDebouncer",
    "ChangeOperation",
    "EVENT_OPERATIONS",
    "PendingChange",
]
