"""Local record of which files are indexed remotely, keyed by path."""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

logger = logging.getLogger("docask.index.state")


@dataclass(frozen=True)
class FileRecord:
    """A file that was uploaded and linked into the vector store."""

    path: str  # POSIX path relative to the project root
    sha256: str
    file_id: str
    vector_store_file_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sha256": self.sha256,
            "file_id": self.file_id,
            "vector_store_file_id": self.vector_store_file_id,
        }

    @classmethod
    def from_dict(cls, path: str, data: Dict[str, Any]) -> "FileRecord":
        return cls(
            path=path,
            sha256=data["sha256"],
            file_id=data["file_id"],
            vector_store_file_id=data.get("vector_store_file_id", data["file_id"]),
        )


def compute_file_hash(file_path: Path) -> str:
    """Compute SHA-256 hash of a file."""
    hasher = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


class StateStore:
    """Path → FileRecord mapping persisted as a single JSON document.

    Every mutation rewrites the whole document through a temporary file that
    replaces the target atomically. Write errors propagate to the caller.
    """

    def __init__(self, path: Path, records: Optional[Dict[str, FileRecord]] = None):
        self.path = path
        self._records: Dict[str, FileRecord] = dict(records or {})
        self._lock = threading.RLock()

    @classmethod
    def load(cls, path: Path) -> "StateStore":
        """Load the document at ``path``; anything unusable yields an empty store."""
        if not path.exists():
            return cls(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            files = data.get("files", {})
            records = {
                rel_path: FileRecord.from_dict(rel_path, info)
                for rel_path, info in files.items()
            }
        except (OSError, json.JSONDecodeError, KeyError, TypeError, AttributeError) as e:
            logger.warning("Ignoring unreadable state document %s: %s", path, e)
            return cls(path)
        logger.debug("Loaded state from %s (%d files)", path, len(records))
        return cls(path, records)

    def lookup(self, rel_path: str) -> Optional[FileRecord]:
        with self._lock:
            return self._records.get(rel_path)

    def upsert(self, rel_path: str, record: FileRecord) -> None:
        with self._lock:
            self._records[rel_path] = record
            self._save()

    def remove(self, rel_path: str) -> Optional[FileRecord]:
        with self._lock:
            record = self._records.pop(rel_path, None)
            if record is not None:
                self._save()
            return record

    def paths(self) -> List[str]:
        with self._lock:
            return sorted(self._records)

    def __contains__(self, rel_path: object) -> bool:
        with self._lock:
            return rel_path in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __iter__(self) -> Iterator[FileRecord]:
        with self._lock:
            return iter(list(self._records.values()))

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "files": {
                    rel_path: record.to_dict()
                    for rel_path, record in sorted(self._records.items())
                }
            }

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.",
            suffix=".tmp",
            dir=str(self.path.parent),
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise
        logger.debug("Saved state to %s (%d files)", self.path, len(self._records))


__all__ = ["FileRecord", "StateStore", "compute_file_hash"]
