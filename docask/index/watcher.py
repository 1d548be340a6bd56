"""Filesystem watch loop: watchdog events → debouncer → batch worker."""

from __future__ import annotations

import logging
import os
import queue
import threading
import time
from pathlib import Path
from typing import Any, Callable, List, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .debounce import ChangeDebouncer, PendingChange
from .matcher import PathMatcher

logger = logging.getLogger("docask.index.watcher")

_STOP = object()


class DocumentEventHandler(FileSystemEventHandler):
    """Filters watchdog events through the matcher and queues them."""

    def __init__(self, matcher: PathMatcher, debouncer: ChangeDebouncer):
        super().__init__()
        self.matcher = matcher
        self.debouncer = debouncer

    def _maybe_enqueue(self, kind: str, src_path: Any) -> None:
        rel_path = self.matcher.relative(os.fsdecode(src_path))
        if rel_path is None or not self.matcher.matches(rel_path):
            return
        self.debouncer.record(kind, rel_path)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._maybe_enqueue("created", event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._maybe_enqueue("modified", event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._maybe_enqueue("deleted", event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._maybe_enqueue("deleted", event.src_path)
        self._maybe_enqueue("created", event.dest_path)


class BatchWorker:
    """Single thread that applies drained batches in the order received.

    Retry sleeps happen here, away from the timer and the event intake.
    """

    def __init__(self, process: Callable[[List[PendingChange]], Any], name: str = "docask-batch"):
        self._process = process
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._started = False

    def start(self) -> None:
        if not self._started:
            self._thread.start()
            self._started = True

    def submit(self, batch: List[PendingChange]) -> None:
        self._queue.put(list(batch))

    def stop(self, timeout: Optional[float] = None) -> None:
        """Finish queued batches, then stop the thread."""
        if not self._started:
            return
        self._queue.put(_STOP)
        self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            logger.warning("Batch worker still busy after %.1fs; exiting anyway", timeout or 0)

    def _run(self) -> None:
        while True:
            batch = self._queue.get()
            try:
                if batch is _STOP:
                    return
                self._process(batch)
            except Exception:
                logger.exception("Processing batch of %d change(s) failed", len(batch))
            finally:
                self._queue.task_done()


class DocumentWatcher:
    """Watches a directory and feeds settled changes to a batch processor."""

    def __init__(
        self,
        watch_dir: Path,
        matcher: PathMatcher,
        process_batch: Callable[[List[PendingChange]], Any],
        debounce_ms: int,
        batch_max: int,
        observer_factory: Callable[[], Any] = Observer,
    ):
        self.watch_dir = watch_dir
        self.matcher = matcher
        self.worker = BatchWorker(process_batch)
        self.debouncer = ChangeDebouncer(
            on_batch=self.worker.submit,
            debounce_ms=debounce_ms,
            batch_max=batch_max,
        )
        self.handler = DocumentEventHandler(matcher, self.debouncer)
        self._observer_factory = observer_factory
        self._observer: Any = None

    def start(self) -> None:
        self.worker.start()
        observer = self._observer_factory()
        observer.schedule(self.handler, str(self.watch_dir), recursive=True)
        observer.start()
        self._observer = observer
        logger.info("Watching %s", self.watch_dir)

    def stop(self, timeout: float = 30.0) -> None:
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5.0)
            self._observer = None
        self.debouncer.cancel()
        self.worker.stop(timeout=timeout)
        logger.info("Stopped watching %s", self.watch_dir)

    def run_forever(self, stop_event: Optional[threading.Event] = None) -> None:
        """Block until interrupted (or ``stop_event`` is set), then shut down."""
        self.start()
        try:
            while stop_event is None or not stop_event.is_set():
                time.sleep(0.5)
        except KeyboardInterrupt:
            logger.info("Interrupted; shutting down watcher")
        finally:
            self.stop()


__all__ = ["BatchWorker", "DocumentEventHandler", "DocumentWatcher"]
