"""Tests for the per-session event log."""

from __future__ import annotations

import os
import time
from pathlib import Path

from autopatch.core.models import (
    ApplyBatch,
    ApplyResult,
    ErrorRecord,
    ErrorSummary,
    ErrorType,
    PatchCandidate,
    RunResult,
)
from autopatch.reporting.session_log import SessionLog, list_sessions


def _patch() -> PatchCandidate:
    error = ErrorRecord(message="FAIL a.ts", file="a.ts", type=ErrorType.IMPORT)
    return PatchCandidate(error=error, strategy="fix_missing_imports", confidence=0.9, description="d")


class TestSessionLog:
    def test_session_start_written_on_creation(self, tmp_path: Path):
        log = SessionLog(tmp_path / "logs")

        entries = log.read_entries()

        assert log.path.name == f"session-{log.session_id}.log"
        assert len(entries) == 1
        assert entries[0]["type"] == "session_start"
        assert entries[0]["sessionId"] == log.session_id
        assert entries[0]["startTime"] == log.start_time

    def test_event_sequence(self, tmp_path: Path):
        log = SessionLog(tmp_path)
        patch = _patch()

        log.log_test_execution({"jest": RunResult(success=False, duration_ms=10)})
        log.log_error_analysis([patch.error], ErrorSummary(total=1))
        log.log_patch_generation([patch])
        log.log_patch_application(ApplyBatch([ApplyResult(success=True, patch=patch, attempt=1)]), 1)
        log.log_cycle_completion({"cycles": 1, "finalSuccess": True})
        log.log_system_error(OSError("disk full"))

        entries = log.read_entries()

        assert [e["type"] for e in entries] == [
            "session_start",
            "test_execution",
            "error_analysis",
            "patch_generation",
            "patch_application",
            "cycle_completion",
            "system_error",
        ]
        assert all("timestamp" in e and e["sessionId"] == log.session_id for e in entries)
        assert entries[1]["summary"]["failedSuites"] == 1
        assert entries[3]["patches"][0]["hasChanges"] is False
        assert entries[4]["successCount"] == 1
        assert entries[5]["finalSuccess"] is True
        assert entries[6]["errorType"] == "OSError"

    def test_long_messages_are_truncated(self, tmp_path: Path):
        log = SessionLog(tmp_path)
        error = ErrorRecord(message="x" * 500)

        log.log_error_analysis([error], ErrorSummary(total=1))

        assert len(log.read_entries()[-1]["errors"][0]["message"]) == 200

    def test_stack_traces_only_when_enabled(self, tmp_path: Path):
        error = ErrorRecord(message="m", stack_trace=["at a (b.ts:1:1)"])

        quiet = SessionLog(tmp_path / "quiet")
        quiet.log_error_analysis([error], ErrorSummary(total=1))
        verbose = SessionLog(tmp_path / "verbose", include_stack_traces=True)
        verbose.log_error_analysis([error], ErrorSummary(total=1))

        assert "stackTrace" not in quiet.read_entries()[-1]["errors"][0]
        assert verbose.read_entries()[-1]["errors"][0]["stackTrace"] == ["at a (b.ts:1:1)"]


class TestListSessions:
    def test_newest_first(self, tmp_path: Path):
        older = tmp_path / "session-2026-01-01T00-00-00-000000Z.log"
        newer = tmp_path / "session-2026-01-02T00-00-00-000000Z.log"
        older.write_text("{}\n")
        newer.write_text("{}\n")
        (tmp_path / "patch_cycle_log.md").write_text("# report")
        past = time.time() - 3600
        os.utime(older, (past, past))

        sessions = list_sessions(tmp_path)

        assert [s.session_id for s in sessions] == [
            "2026-01-02T00-00-00-000000Z",
            "2026-01-01T00-00-00-000000Z",
        ]
        assert sessions[0].path == newer

    def test_includes_live_session(self, tmp_path: Path):
        log = SessionLog(tmp_path / "logs")

        sessions = list_sessions(tmp_path / "logs")

        assert [s.session_id for s in sessions] == [log.session_id]

    def test_missing_directory(self, tmp_path: Path):
        assert list_sessions(tmp_path / "nope") == []
