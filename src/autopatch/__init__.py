"""autopatch: automated repair loop for failing JavaScript/TypeScript test suites."""

from autopatch._version import __version__
from autopatch.analysis.classifier import ErrorClassifier
from autopatch.fix.applier import PatchApplier
from autopatch.fix.engine import PatchStrategyEngine
from autopatch.orchestrator.loop import OrchestrationLoop, build_loop

__all__ = [
    "__version__",
    "ErrorClassifier",
    "PatchApplier",
    "PatchStrategyEngine",
    "OrchestrationLoop",
    "build_loop",
]
