"""Patch application, backups and the batch patch log."""

from __future__ import annotations

import logging
import re
import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path

from autopatch.core.config import get_autopatch_dir
from autopatch.core.jsonl import JsonLinesLog
from autopatch.core.models import (
    ApplyBatch,
    ApplyResult,
    ApplyResultType,
    BackupRecord,
    FileEdit,
    PatchCandidate,
    Replacement,
    file_safe_timestamp,
    iso_timestamp,
)

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass
class PatchValidation:
    valid: bool
    errors: list[str] = field(default_factory=list)


@dataclass
class RollbackResult:
    success: bool
    file: str
    backup: str = ""
    error: str = ""


@dataclass
class BackupInfo:
    file: str
    path: Path
    size: int
    modified: float


@dataclass
class PatchStatistics:
    total_attempts: int = 0
    successful_patches: int = 0
    failed_patches: int = 0
    by_error_type: dict[str, int] = field(default_factory=dict)
    by_strategy: dict[str, int] = field(default_factory=dict)
    recent_activity: list[dict] = field(default_factory=list)


class PatchApplier:
    """Applies patches to source files with per-patch backup and restore."""

    def __init__(
        self,
        project_path: Path | None = None,
        backup_dir: Path | None = None,
        log_path: Path | None = None,
        confidence_thresholds: dict[str, float] | None = None,
    ):
        self.project_path = (project_path or Path.cwd()).resolve()
        autopatch_dir = get_autopatch_dir(self.project_path)
        self.backup_dir = backup_dir or autopatch_dir / "backups"
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        self.log = JsonLinesLog(log_path or autopatch_dir / "patch.log")
        self.confidence_thresholds = confidence_thresholds

    # ------------------------------------------------------------------
    # Applying
    # ------------------------------------------------------------------

    def apply_patches(self, patches: list[PatchCandidate], attempt: int = 1) -> ApplyBatch:
        """Apply patches in order; a failing patch does not stop the rest."""
        logger.info("Applying %d patches (attempt %d)", len(patches), attempt)
        batch = ApplyBatch()
        for patch in patches:
            batch.results.append(self.apply_patch(patch, attempt))
        self._log_batch(batch, attempt)
        return batch

    def apply_patch(self, patch: PatchCandidate, attempt: int = 1) -> ApplyResult:
        """Apply one patch atomically: all of its edits land, or none do."""
        logger.debug(
            "Applying %s for %s error in %s",
            patch.strategy, patch.error.type.value, patch.error.file,
        )

        if patch.is_suggestion:
            return ApplyResult(
                success=True,
                patch=patch,
                attempt=attempt,
                type=ApplyResultType.SUGGESTION,
                message=patch.suggestion or patch.description,
            )

        threshold = self._threshold_for(patch)
        if threshold is not None and patch.confidence < threshold:
            return ApplyResult(
                success=True,
                patch=patch,
                attempt=attempt,
                type=ApplyResultType.SUGGESTION,
                message=(
                    f"Confidence {patch.confidence:.2f} is below the "
                    f"{patch.error.severity.value} threshold {threshold:.2f}; "
                    f"review manually: {patch.description}"
                ),
            )

        backups: list[BackupRecord] = []
        try:
            snapshotted: set[Path] = set()
            for change in patch.changes:
                path = self._resolve_file(change.file)
                if path in snapshotted or not path.exists():
                    continue
                backups.append(self.create_backup(path, attempt))
                snapshotted.add(path)

            for change in patch.changes:
                self._apply_edit(change)
        except Exception as e:
            logger.warning("Patch %s failed, restoring %d file(s): %s", patch.strategy, len(backups), e)
            self._restore(backups)
            return ApplyResult(
                success=False,
                patch=patch,
                attempt=attempt,
                backups=backups,
                error=str(e),
            )

        return ApplyResult(
            success=True,
            patch=patch,
            attempt=attempt,
            type=ApplyResultType.APPLIED,
            backups=backups,
            changes_applied=len(patch.changes),
            message=patch.description,
        )

    def _threshold_for(self, patch: PatchCandidate) -> float | None:
        if self.confidence_thresholds is None:
            return None
        return self.confidence_thresholds.get(patch.error.severity.value)

    def _apply_edit(self, change: FileEdit) -> None:
        path = self._resolve_file(change.file)
        shape = change.shape
        if shape == "content":
            path.write_text(change.content, encoding="utf-8")
        elif shape == "insert":
            insert_content(path, change.insert_at, change.insert_content)
        elif shape == "replace":
            replace_content(path, change.replace)
        else:
            raise ValueError(f"Edit for {change.file} must specify exactly one of content, insert or replace")

    def _restore(self, backups: list[BackupRecord]) -> None:
        for backup in backups:
            try:
                shutil.copyfile(backup.backup_path, backup.original_path)
            except OSError as e:
                logger.error("Failed to restore backup %s: %s", backup.backup_path, e)

    def _resolve_file(self, file: str) -> Path:
        """Resolve a possibly relative file path."""
        path = Path(file)
        if path.is_absolute():
            return path
        return self.project_path / path

    # ------------------------------------------------------------------
    # Backups
    # ------------------------------------------------------------------

    def create_backup(self, file_path: Path, attempt: int) -> BackupRecord:
        """Copy ``file_path`` into the backup directory before it is edited."""
        timestamp = file_safe_timestamp()
        backup_path = self.backup_dir / f"{file_path.name}.{timestamp}.attempt-{attempt}.backup"
        shutil.copyfile(file_path, backup_path)
        return BackupRecord(
            original_path=str(file_path),
            backup_path=str(backup_path),
            timestamp=timestamp,
            attempt=attempt,
        )

    def rollback(self, results: list[ApplyResult]) -> list[RollbackResult]:
        """Restore the backups of every successfully applied result."""
        rolled_back = []
        for result in results:
            if not result.success or result.type != ApplyResultType.APPLIED:
                continue
            for backup in result.backups:
                try:
                    shutil.copyfile(backup.backup_path, backup.original_path)
                    rolled_back.append(RollbackResult(
                        success=True, file=backup.original_path, backup=backup.backup_path,
                    ))
                except OSError as e:
                    rolled_back.append(RollbackResult(
                        success=False, file=backup.original_path, error=str(e),
                    ))
        return rolled_back

    def clean_backups(self, older_than_days: float = 7) -> int:
        """Delete backups whose mtime is older than the threshold.

        Irreversible: pruned backups cannot be used to restore anything.
        """
        cutoff = time.time() - older_than_days * SECONDS_PER_DAY
        cleaned = 0
        for entry in self.backup_dir.iterdir():
            if not entry.is_file():
                continue
            if entry.stat().st_mtime < cutoff:
                entry.unlink()
                cleaned += 1
        logger.info("Cleaned %d old backup files", cleaned)
        return cleaned

    def get_backup_info(self) -> list[BackupInfo]:
        """Backups on disk, newest first."""
        backups = []
        for entry in self.backup_dir.iterdir():
            if not entry.is_file():
                continue
            stat = entry.stat()
            backups.append(BackupInfo(
                file=entry.name, path=entry, size=stat.st_size, modified=stat.st_mtime,
            ))
        return sorted(backups, key=lambda b: b.modified, reverse=True)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_patch(self, patch: PatchCandidate) -> PatchValidation:
        """Pre-flight check; ``apply_patches`` does not call this itself."""
        errors = []
        if not isinstance(patch.changes, list):
            errors.append("Patch must have changes list")
            return PatchValidation(valid=False, errors=errors)

        for change in patch.changes:
            if not change.file:
                errors.append("Change must specify file path")
            if change.shape is None:
                errors.append("Change must specify exactly one of content, insert_content or replace")
            if change.file and not self._resolve_file(change.file).exists():
                errors.append(f"File does not exist: {change.file}")

        return PatchValidation(valid=not errors, errors=errors)

    # ------------------------------------------------------------------
    # Patch log
    # ------------------------------------------------------------------

    def _log_batch(self, batch: ApplyBatch, attempt: int) -> None:
        self.log.append({
            "timestamp": iso_timestamp(),
            "attempt": attempt,
            "results": [r.to_dict() for r in batch.results],
        })

    def get_patch_statistics(self) -> PatchStatistics:
        """Tally every batch recorded in the patch log."""
        entries = self.log.read_entries()
        stats = PatchStatistics(total_attempts=len(entries), recent_activity=entries[-10:])
        for entry in entries:
            for result in entry.get("results", []):
                if result.get("success"):
                    stats.successful_patches += 1
                else:
                    stats.failed_patches += 1
                error_type = result.get("error")
                if error_type:
                    stats.by_error_type[error_type] = stats.by_error_type.get(error_type, 0) + 1
                strategy = result.get("strategy")
                if strategy:
                    stats.by_strategy[strategy] = stats.by_strategy.get(strategy, 0) + 1
        return stats


def insert_content(path: Path, line_index: int, text: str) -> None:
    """Splice ``text`` in as a new line before ``line_index``."""
    lines = path.read_text(encoding="utf-8").split("\n")
    lines.insert(line_index, text)
    path.write_text("\n".join(lines), encoding="utf-8")


def replace_content(path: Path, replacement: Replacement) -> None:
    content = path.read_text(encoding="utf-8")
    if isinstance(replacement.old, re.Pattern):
        content = replacement.old.sub(replacement.new, content, count=replacement.count)
    elif replacement.count:
        content = content.replace(replacement.old, replacement.new, replacement.count)
    else:
        content = content.replace(replacement.old, replacement.new)
    path.write_text(content, encoding="utf-8")
