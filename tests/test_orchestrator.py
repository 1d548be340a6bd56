"""Tests for full syncs and batch processing."""

from __future__ import annotations

from pathlib import Path

import pytest

from docask.index import (
    ChangeOperation,
    FileOutcome,
    FileRecord,
    GlobConfig,
    NoFilesMatchedError,
    PendingChange,
    RemovalOutcome,
    StateStore,
    SyncOrchestrator,
)
from fakes import FakeRemote, fast_retry

STORE_ID = "vs-test"


def _write(root: Path, rel: str, text: str) -> Path:
    target = root / rel
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(text, encoding="utf-8")
    return target


def _orchestrator(root: Path, remote: FakeRemote, includes=("docs/**/*.md",), excludes=(), **kw):
    return SyncOrchestrator(
        root=root,
        state=StateStore.load(root / ".docask_state.json"),
        remote=remote,
        retry=fast_retry(kw.pop("max_attempts", 3)),
        vector_store_id=STORE_ID,
        globs=GlobConfig(includes=tuple(includes), excludes=tuple(excludes)),
        **kw,
    )


def test_first_sync_uploads_then_second_sync_skips(tmp_path: Path):
    _write(tmp_path, "docs/a.md", "# A")
    _write(tmp_path, "docs/b.md", "# B")
    remote = FakeRemote()
    orchestrator = _orchestrator(tmp_path, remote)

    first = orchestrator.sync_all()
    assert (first.updated, first.skipped, first.errored) == (2, 0, 0)
    assert first.pattern_set == "configured"
    assert len(remote.ops("upload")) == 2
    assert len(remote.ops("link")) == 2

    second = orchestrator.sync_all()
    assert (second.updated, second.skipped, second.errored) == (0, 2, 0)
    assert len(remote.ops("upload")) == 2


def test_state_survives_a_fresh_orchestrator(tmp_path: Path):
    _write(tmp_path, "docs/a.md", "# A")
    remote = FakeRemote()
    _orchestrator(tmp_path, remote).sync_all()

    report = _orchestrator(tmp_path, remote).sync_all()

    assert report.skipped == 1
    assert len(remote.ops("upload")) == 1


def test_changed_content_replaces_remote_file(tmp_path: Path):
    doc = _write(tmp_path, "docs/a.md", "# A")
    remote = FakeRemote()
    orchestrator = _orchestrator(tmp_path, remote)
    orchestrator.sync_all()
    old = orchestrator.state.lookup("docs/a.md")

    doc.write_text("# A, revised", encoding="utf-8")
    report = orchestrator.sync_all()

    new = orchestrator.state.lookup("docs/a.md")
    assert report.updated == 1
    assert new.file_id != old.file_id
    assert new.sha256 != old.sha256
    assert ("unlink", STORE_ID, old.file_id) in remote.calls
    assert old.file_id in remote.deleted
    assert remote.uploads[new.file_id] == b"# A, revised"


def test_permanent_upload_failure_is_counted_and_others_continue(tmp_path: Path):
    _write(tmp_path, "docs/a.md", "# A")
    remote = FakeRemote()
    orchestrator = _orchestrator(tmp_path, remote, max_attempts=3)

    remote.fail("upload", times=3)
    _write(tmp_path, "docs/b.md", "# B")
    report = orchestrator.sync_all()

    assert report.errored == 1
    assert report.updated == 1
    # docs/a.md burns every attempt; docs/b.md then succeeds first time.
    assert len(remote.ops("upload")) == 4
    assert orchestrator.state.lookup("docs/a.md") is None
    assert orchestrator.state.lookup("docs/b.md") is not None


def test_transient_upload_failure_recovers(tmp_path: Path):
    _write(tmp_path, "docs/a.md", "# A")
    remote = FakeRemote()
    remote.fail("upload", times=2)

    report = _orchestrator(tmp_path, remote, max_attempts=3).sync_all()

    assert report.updated == 1
    assert len(remote.ops("upload")) == 3


def test_link_failure_discards_the_uploaded_file(tmp_path: Path):
    _write(tmp_path, "docs/a.md", "# A")
    remote = FakeRemote()
    remote.fail("link")
    orchestrator = _orchestrator(tmp_path, remote)

    report = orchestrator.sync_all()

    assert report.errored == 1
    uploaded_id = next(iter(remote.uploads))
    assert remote.deleted == [uploaded_id]
    assert "docs/a.md" not in orchestrator.state


def test_fallback_patterns_apply_when_nothing_matches(tmp_path: Path, caplog):
    _write(tmp_path, "notes/guide.md", "# Guide")
    remote = FakeRemote()
    orchestrator = _orchestrator(tmp_path, remote, includes=("docs/**/*.md",))

    with caplog.at_level("WARNING", logger="docask.index.orchestrator"):
        report = orchestrator.sync_all()

    assert report.pattern_set == "fallback"
    assert report.updated == 1
    assert "falling back" in caplog.text


def test_fallback_still_honours_excludes(tmp_path: Path):
    _write(tmp_path, "vendor/readme.md", "# Vendor")
    orchestrator = _orchestrator(tmp_path, FakeRemote(), includes=(), excludes=("vendor/**",))

    with pytest.raises(NoFilesMatchedError):
        orchestrator.sync_all()


def test_no_files_anywhere_raises(tmp_path: Path):
    (tmp_path / "image.png").write_bytes(b"\x89PNG")
    remote = FakeRemote()

    with pytest.raises(NoFilesMatchedError):
        _orchestrator(tmp_path, remote).sync_all()
    assert remote.calls == []


def test_upsert_skips_missing_files_and_directories(tmp_path: Path):
    (tmp_path / "docs" / "folder.md").mkdir(parents=True)
    remote = FakeRemote()
    orchestrator = _orchestrator(tmp_path, remote)

    assert orchestrator.upsert_one("docs/gone.md") is FileOutcome.SKIPPED
    assert orchestrator.upsert_one("docs/folder.md") is FileOutcome.SKIPPED
    assert remote.calls == []


def test_remove_untracked_path_is_missing_without_remote_calls(tmp_path: Path):
    remote = FakeRemote()

    outcome = _orchestrator(tmp_path, remote).remove_one("docs/never.md")

    assert outcome is RemovalOutcome.MISSING
    assert remote.calls == []


def test_remove_tracked_path_unlinks_and_clears_state(tmp_path: Path):
    _write(tmp_path, "docs/a.md", "# A")
    remote = FakeRemote()
    orchestrator = _orchestrator(tmp_path, remote)
    orchestrator.sync_all()
    file_id = orchestrator.state.lookup("docs/a.md").file_id

    outcome = orchestrator.remove_one("docs/a.md")

    assert outcome is RemovalOutcome.REMOVED
    assert file_id not in remote.linked
    assert file_id in remote.deleted
    assert "docs/a.md" not in StateStore.load(tmp_path / ".docask_state.json")


def test_remove_when_remote_already_dropped_the_file(tmp_path: Path):
    remote = FakeRemote()
    orchestrator = _orchestrator(tmp_path, remote)
    orchestrator.state.upsert(
        "docs/a.md",
        FileRecord("docs/a.md", "abc", "file-gone", "file-gone"),
    )

    assert orchestrator.remove_one("docs/a.md") is RemovalOutcome.REMOTE_ALREADY_ABSENT
    assert "docs/a.md" not in orchestrator.state


def test_remove_clears_state_even_when_unlink_keeps_failing(tmp_path: Path, caplog):
    _write(tmp_path, "docs/a.md", "# A")
    remote = FakeRemote()
    orchestrator = _orchestrator(tmp_path, remote, max_attempts=2)
    orchestrator.sync_all()
    remote.fail("unlink")

    outcome = orchestrator.remove_one("docs/a.md")

    assert outcome is RemovalOutcome.REMOVED
    assert len(remote.ops("unlink")) == 2
    assert "docs/a.md" not in orchestrator.state
    assert "Could not unlink docs/a.md" in caplog.text


def test_process_batch_applies_changes_in_order(tmp_path: Path):
    _write(tmp_path, "docs/a.md", "# A")
    _write(tmp_path, "docs/b.md", "# B")
    remote = FakeRemote()
    orchestrator = _orchestrator(tmp_path, remote)
    orchestrator.sync_all()
    (tmp_path / "docs" / "a.md").unlink()
    _write(tmp_path, "docs/c.md", "# C")

    report = orchestrator.process_batch(
        [
            PendingChange(ChangeOperation.REMOVE, "docs/a.md"),
            PendingChange(ChangeOperation.UPSERT, "docs/c.md"),
            PendingChange(ChangeOperation.UPSERT, "docs/b.md"),
            PendingChange(ChangeOperation.REMOVE, "docs/zzz.md"),
        ]
    )

    assert [d["path"] for d in report.details] == [
        "docs/a.md",
        "docs/c.md",
        "docs/b.md",
        "docs/zzz.md",
    ]
    assert [d["action"] for d in report.details] == ["removed", "updated", "skipped", "missing"]
    assert (report.removed, report.updated, report.skipped, report.missing) == (1, 1, 1, 1)
    assert orchestrator.state.paths() == ["docs/b.md", "docs/c.md"]


def test_prune_removes_tracked_files_no_longer_selected(tmp_path: Path):
    _write(tmp_path, "docs/a.md", "# A")
    _write(tmp_path, "docs/b.md", "# B")
    remote = FakeRemote()
    orchestrator = _orchestrator(tmp_path, remote)
    orchestrator.sync_all()
    (tmp_path / "docs" / "b.md").unlink()

    kept = orchestrator.sync_all()
    assert "docs/b.md" in orchestrator.state
    assert kept.removed == 0

    pruned = orchestrator.sync_all(prune=True)
    assert pruned.removed == 1
    assert orchestrator.state.paths() == ["docs/a.md"]


def test_sync_respects_batch_size(tmp_path: Path, caplog):
    for name in "abcde":
        _write(tmp_path, f"docs/{name}.md", name)
    orchestrator = _orchestrator(tmp_path, FakeRemote(), batch_max=2)

    with caplog.at_level("INFO", logger="docask.index.orchestrator"):
        report = orchestrator.sync_all()

    assert report.updated == 5
    assert "Batch 3/3 (1 files)" in caplog.text


def test_report_summary_and_dict(tmp_path: Path):
    _write(tmp_path, "docs/a.md", "# A")
    report = _orchestrator(tmp_path, FakeRemote()).sync_all()

    assert report.summary() == "updated=1 skipped=0 errored=0 removed=0 missing=0"
    data = report.to_dict()
    assert data["pattern_set"] == "configured"
    assert data["details"] == [{"path": "docs/a.md", "action": "updated"}]
    assert report.total == 1
