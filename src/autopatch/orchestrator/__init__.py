"""The bounded patch-and-retest loop."""

from autopatch.orchestrator.loop import OrchestrationLoop, build_loop

__all__ = ["OrchestrationLoop", "build_loop"]
