"""Patch strategy engine: turns classified errors into prioritized patches."""

from __future__ import annotations

import functools
import logging
from pathlib import Path
from typing import Mapping

from autopatch.core.models import ErrorRecord, ErrorType, PatchCandidate
from autopatch.fix.strategies import (
    DEFAULT_REGISTRY,
    DEFAULT_STRATEGY_TABLE,
    Strategy,
    StrategyContext,
    StrategyId,
)
from autopatch.fix.tables import DEFAULT_TABLES, StrategyTables

logger = logging.getLogger(__name__)

# Confidence gaps at or below this are decided by severity instead.
CONFIDENCE_BAND = 0.1


class PatchStrategyEngine:
    """Runs the type-specific strategies for each error.

    The first strategy that returns an outcome wins for that error; later
    strategies are not consulted even when the winner has low confidence.
    """

    def __init__(
        self,
        project_path: Path | None = None,
        strategy_table: Mapping[ErrorType, tuple[StrategyId, ...]] = DEFAULT_STRATEGY_TABLE,
        registry: Mapping[StrategyId, Strategy] = DEFAULT_REGISTRY,
        tables: StrategyTables = DEFAULT_TABLES,
    ):
        self.strategy_table = strategy_table
        self.registry = registry
        self.context = StrategyContext(project_path, tables)

    def generate_patches(self, errors: list[ErrorRecord]) -> list[PatchCandidate]:
        """Generate one patch per error where possible, highest priority first."""
        patches = []
        for error in errors:
            patch = self.generate_for(error)
            if patch is not None:
                patches.append(patch)
        return prioritize_patches(patches)

    def generate_for(self, error: ErrorRecord) -> PatchCandidate | None:
        """Try the strategies for ``error.type`` in order; first hit wins."""
        for strategy_id in self.strategy_table.get(error.type, ()):
            strategy = self.registry.get(strategy_id)
            if strategy is None:
                logger.debug("No implementation registered for %s", strategy_id.value)
                continue

            try:
                outcome = strategy(error, self.context)
            except Exception as e:
                logger.warning(
                    "Strategy %s failed for %s error in %s: %s",
                    strategy_id.value, error.type.value, error.file, e,
                )
                continue

            if outcome is not None:
                return PatchCandidate(
                    error=error,
                    strategy=strategy_id.value,
                    confidence=outcome.confidence,
                    changes=outcome.changes,
                    description=outcome.description,
                    suggestion=outcome.suggestion,
                )
        return None


def compare_patches(a: PatchCandidate, b: PatchCandidate) -> int:
    """Higher confidence first; within the confidence band, higher severity first."""
    diff = b.confidence - a.confidence
    if abs(diff) > CONFIDENCE_BAND:
        return 1 if diff > 0 else -1
    return b.error.severity.weight - a.error.severity.weight


def prioritize_patches(patches: list[PatchCandidate]) -> list[PatchCandidate]:
    return sorted(patches, key=functools.cmp_to_key(compare_patches))
