"""Drives full syncs and per-batch processing against the remote index."""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Literal, Optional

from .debounce import ChangeOperation, PendingChange
from .matcher import FALLBACK_INCLUDES, GlobConfig, PathMatcher
from .remote import RemoteIndexClient, RemovalOutcome
from .retry import RetryExecutor
from .state import FileRecord, StateStore, compute_file_hash

logger = logging.getLogger("docask.index.orchestrator")

PatternSet = Literal["configured", "fallback"]


class NoFilesMatchedError(RuntimeError):
    """Neither the configured nor the fallback patterns selected any file."""


class FileOutcome(str, Enum):
    UPDATED = "updated"
    SKIPPED = "skipped"
    ERRORED = "errored"


@dataclass
class SyncReport:
    """Tally of one sync run or one processed batch."""

    updated: int = 0
    skipped: int = 0
    errored: int = 0
    removed: int = 0
    missing: int = 0
    pattern_set: Optional[PatternSet] = None
    elapsed_seconds: float = 0.0
    details: List[Dict[str, str]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.updated + self.skipped + self.errored + self.removed + self.missing

    def record(self, path: str, outcome: Enum) -> None:
        if outcome is FileOutcome.UPDATED:
            self.updated += 1
        elif outcome is FileOutcome.SKIPPED:
            self.skipped += 1
        elif outcome is FileOutcome.ERRORED:
            self.errored += 1
        elif outcome is RemovalOutcome.MISSING:
            self.missing += 1
        else:
            self.removed += 1
        self.details.append({"path": path, "action": outcome.value})

    def merge(self, other: "SyncReport") -> None:
        self.updated += other.updated
        self.skipped += other.skipped
        self.errored += other.errored
        self.removed += other.removed
        self.missing += other.missing
        self.details.extend(other.details)

    def summary(self) -> str:
        return (
            f"updated={self.updated} skipped={self.skipped} errored={self.errored} "
            f"removed={self.removed} missing={self.missing}"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "updated": self.updated,
            "skipped": self.skipped,
            "errored": self.errored,
            "removed": self.removed,
            "missing": self.missing,
            "pattern_set": self.pattern_set,
            "elapsed_seconds": self.elapsed_seconds,
            "details": list(self.details),
        }


class SyncOrchestrator:
    """Keeps the remote vector store in line with files on disk."""

    def __init__(
        self,
        root: Path,
        state: StateStore,
        remote: RemoteIndexClient,
        retry: RetryExecutor,
        vector_store_id: str,
        globs: GlobConfig,
        batch_max: int = 20,
        matcher: Optional[PathMatcher] = None,
    ):
        if batch_max <= 0:
            raise ValueError("batch_max must be greater than zero")
        self.root = root
        self.state = state
        self.remote = remote
        self.retry = retry
        self.vector_store_id = vector_store_id
        self.globs = globs
        self.batch_max = batch_max
        self.matcher = matcher or PathMatcher(root, globs)

    def resolve_files(self) -> tuple[List[str], PatternSet]:
        """Resolve the file set, falling back to the broad patterns if empty."""
        paths = self.matcher.resolve(self.globs.includes, self.globs.excludes)
        if paths:
            return sorted(paths), "configured"

        logger.warning(
            "No files matched includes %s; falling back to default patterns %s",
            list(self.globs.includes),
            list(FALLBACK_INCLUDES),
        )
        paths = self.matcher.resolve(FALLBACK_INCLUDES, self.globs.excludes)
        if not paths:
            raise NoFilesMatchedError(
                "No files matched the configured patterns or the fallback patterns "
                f"under {self.root}"
            )
        return sorted(paths), "fallback"

    def sync_all(self, prune: bool = False) -> SyncReport:
        start_time = time.time()
        paths, pattern_set = self.resolve_files()
        report = SyncReport(pattern_set=pattern_set)

        batches = [
            paths[i : i + self.batch_max] for i in range(0, len(paths), self.batch_max)
        ]
        for index, batch in enumerate(batches, start=1):
            batch_report = SyncReport()
            for rel_path in batch:
                batch_report.record(rel_path, self.upsert_one(rel_path))
            logger.info(
                "Batch %d/%d (%d files): %s",
                index,
                len(batches),
                len(batch),
                batch_report.summary(),
            )
            report.merge(batch_report)

        if prune:
            wanted = set(paths)
            for rel_path in self.state.paths():
                if rel_path not in wanted:
                    report.record(rel_path, self.remove_one(rel_path))

        report.elapsed_seconds = round(time.time() - start_time, 2)
        logger.info(
            "Sync complete (%s patterns) - %s elapsed=%.2fs",
            pattern_set,
            report.summary(),
            report.elapsed_seconds,
        )
        return report

    def upsert_one(self, rel_path: str) -> FileOutcome:
        file_path = self.root / rel_path
        if not file_path.is_file() or not os.access(file_path, os.R_OK):
            logger.debug("Skipping %s: not a readable regular file", rel_path)
            return FileOutcome.SKIPPED

        try:
            fingerprint = compute_file_hash(file_path)
        except OSError as e:
            logger.warning("Skipping %s: %s", rel_path, e)
            return FileOutcome.SKIPPED

        previous = self.state.lookup(rel_path)
        if previous is not None and previous.sha256 == fingerprint:
            return FileOutcome.SKIPPED

        try:
            file_id = self.retry.call(
                self.remote.upload,
                file_path,
                description=f"upload {rel_path}",
            )
        except Exception as e:
            logger.error("Failed to upload %s: %s", rel_path, e)
            return FileOutcome.ERRORED

        try:
            link_id = self.retry.call(
                self.remote.link,
                self.vector_store_id,
                file_id,
                description=f"link {rel_path}",
            )
        except Exception as e:
            logger.error("Failed to link %s into %s: %s", rel_path, self.vector_store_id, e)
            self._discard_file(file_id, rel_path)
            return FileOutcome.ERRORED

        self.state.upsert(
            rel_path,
            FileRecord(
                path=rel_path,
                sha256=fingerprint,
                file_id=file_id,
                vector_store_file_id=link_id,
            ),
        )
        logger.info("Updated %s (%s)", rel_path, file_id)

        if previous is not None and previous.file_id != file_id:
            self._unlink_quietly(previous)
            self._discard_file(previous.file_id, rel_path)
        return FileOutcome.UPDATED

    def remove_one(self, rel_path: str) -> RemovalOutcome:
        record = self.state.remove(rel_path)
        if record is None:
            return RemovalOutcome.MISSING

        outcome = self._unlink_quietly(record)
        self._discard_file(record.file_id, rel_path)
        logger.info("Removed %s (%s)", rel_path, outcome.value)
        return outcome

    def process_batch(self, ops: Iterable[PendingChange]) -> SyncReport:
        start_time = time.time()
        report = SyncReport()
        for change in ops:
            if change.operation is ChangeOperation.REMOVE:
                report.record(change.path, self.remove_one(change.path))
            else:
                report.record(change.path, self.upsert_one(change.path))
        report.elapsed_seconds = round(time.time() - start_time, 2)
        logger.info("Processed batch of %d change(s): %s", report.total, report.summary())
        return report

    def _unlink_quietly(self, record: FileRecord) -> RemovalOutcome:
        """Unlink a record's file; failures are logged, never raised."""
        try:
            return self.retry.call(
                self.remote.unlink,
                self.vector_store_id,
                record.file_id,
                description=f"unlink {record.path}",
            )
        except Exception as e:
            logger.warning(
                "Could not unlink %s (%s) from %s: %s",
                record.path,
                record.file_id,
                self.vector_store_id,
                e,
            )
            return RemovalOutcome.REMOVED

    def _discard_file(self, file_id: str, rel_path: str) -> None:
        try:
            self.retry.call(
                self.remote.delete_file,
                file_id,
                description=f"delete file for {rel_path}",
            )
        except Exception as e:
            logger.warning("Could not delete uploaded file %s for %s: %s", file_id, rel_path, e)


__all__ = [
    "FileOutcome",
    "NoFilesMatchedError",
    "SyncOrchestrator",
    "SyncReport",
]
