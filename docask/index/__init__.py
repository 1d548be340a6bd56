"""Remote index synchronization for docask."""

from __future__ import annotations

from .answer import Answer, AnswerError, QuestionAnswerer
from .debounce import ChangeDebouncer, ChangeOperation, PendingChange
from .matcher import FALLBACK_INCLUDES, GlobConfig, PathMatcher, is_indexable
from .orchestrator import FileOutcome, NoFilesMatchedError, SyncOrchestrator, SyncReport
from .remote import RemoteIndexClient, RemovalOutcome
from .retry import RetryConfig, RetryExecutor
from .state import FileRecord, StateStore, compute_file_hash
from .watcher import BatchWorker, DocumentEventHandler, DocumentWatcher

__all__ = [
    # State
    "FileRecord",
    "StateStore",
    "compute_file_hash",
    # Retry
    "RetryConfig",
    "RetryExecutor",
    # Matching
    "FALLBACK_INCLUDES",
    "GlobConfig",
    "PathMatcher",
    "is_indexable",
    # Remote
    "RemoteIndexClient",
    "RemovalOutcome",
    # Debounce + watch
    "ChangeDebouncer",
    "ChangeOperation",
    "PendingChange",
    "BatchWorker",
    "DocumentEventHandler",
    "DocumentWatcher",
    # Orchestration
    "FileOutcome",
    "NoFilesMatchedError",
    "SyncOrchestrator",
    "SyncReport",
    # Questions
    "Answer",
    "AnswerError",
    "QuestionAnswerer",
]
