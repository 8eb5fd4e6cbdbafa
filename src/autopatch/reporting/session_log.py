"""Per-session JSON-lines event log."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from autopatch.core.jsonl import JsonLinesLog
from autopatch.core.models import (
    ApplyBatch,
    ErrorRecord,
    ErrorSummary,
    PatchCandidate,
    RunResult,
    file_safe_timestamp,
    iso_timestamp,
)

logger = logging.getLogger(__name__)

# Error messages are cut to this length in the event log.
MESSAGE_LIMIT = 200


@dataclass
class SessionFile:
    session_id: str
    path: Path
    created: float


class SessionLog:
    """Writes ``session-<id>.log`` under ``log_dir``, one event per line.

    Every event carries ``timestamp``, ``sessionId`` and ``type``.  The
    ``session_start`` event is written on construction.
    """

    def __init__(self, log_dir: Path, include_stack_traces: bool = False):
        self.log_dir = log_dir
        self.include_stack_traces = include_stack_traces
        self.start_time = iso_timestamp()
        self.session_id = file_safe_timestamp()
        self.log = JsonLinesLog(log_dir / f"session-{self.session_id}.log")
        self._write("session_start", startTime=self.start_time)
        logger.info("Starting auto-patch session: %s", self.session_id)

    @property
    def path(self) -> Path:
        return self.log.path

    def log_test_execution(self, results: dict[str, RunResult]) -> None:
        passed = sum(1 for r in results.values() if r.success)
        self._write(
            "test_execution",
            results={suite: r.to_dict() for suite, r in results.items()},
            summary={
                "totalSuites": len(results),
                "passedSuites": passed,
                "failedSuites": len(results) - passed,
                "totalDuration": sum(r.duration_ms for r in results.values()),
            },
        )

    def log_error_analysis(self, errors: list[ErrorRecord], summary: ErrorSummary) -> None:
        entries = []
        for error in errors:
            entry = {
                "type": error.type.value,
                "category": error.category.value,
                "severity": error.severity.value,
                "file": error.file,
                "message": error.message[:MESSAGE_LIMIT],
            }
            if self.include_stack_traces and error.stack_trace:
                entry["stackTrace"] = error.stack_trace
            entries.append(entry)
        self._write("error_analysis", errorCount=len(errors), errors=entries, summary=summary.to_dict())

    def log_patch_generation(self, patches: list[PatchCandidate]) -> None:
        self._write(
            "patch_generation",
            patchCount=len(patches),
            patches=[
                {
                    "errorType": p.error.type.value,
                    "strategy": p.strategy,
                    "confidence": p.confidence,
                    "description": p.description,
                    "hasChanges": bool(p.changes),
                }
                for p in patches
            ],
        )

    def log_patch_application(self, batch: ApplyBatch, attempt: int) -> None:
        self._write(
            "patch_application",
            attempt=attempt,
            totalPatches=len(batch.results),
            successCount=batch.success_count,
            failureCount=batch.failure_count,
            results=[r.to_dict() for r in batch.results],
        )

    def log_cycle_completion(self, data: dict) -> None:
        self._write("cycle_completion", endTime=iso_timestamp(), **data)

    def log_system_error(self, error: BaseException) -> None:
        self._write("system_error", error=str(error), errorType=type(error).__name__)

    def read_entries(self) -> list[dict]:
        return self.log.read_entries()

    def _write(self, event_type: str, **fields) -> None:
        self.log.append({
            "timestamp": iso_timestamp(),
            "sessionId": self.session_id,
            "type": event_type,
            **fields,
        })


def list_sessions(log_dir: Path) -> list[SessionFile]:
    """Session logs in ``log_dir``, newest first."""
    if not log_dir.is_dir():
        return []
    sessions = [
        SessionFile(
            session_id=entry.name[len("session-"):-len(".log")],
            path=entry,
            created=entry.stat().st_mtime,
        )
        for entry in log_dir.glob("session-*.log")
    ]
    return sorted(sessions, key=lambda s: s.created, reverse=True)
