from bookmark_organizer.services.reorganization.orchestrator import ReorganizationOrchestrator
from bookmark_organizer.services.reorganization.run_state import (
    ProgressCallback,
    RunPhase,
    RunState,
)

__all__ = ["ProgressCallback", "ReorganizationOrchestrator", "RunPhase", "RunState"]
