"""Immutable progress snapshots published by the orchestrator."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict


class RunPhase(str, Enum):
    IDLE = "idle"
    REMOVING_DUPLICATES = "removing_duplicates"
    SCANNING = "scanning"
    BATCH_CLASSIFYING = "batch_classifying"
    RECONCILING = "reconciling"
    MUTATING = "mutating"
    PRUNING = "pruning"
    DONE = "done"
    ABORTED = "aborted"


class RunState(BaseModel):
    model_config = ConfigDict(frozen=True)

    phase: RunPhase = RunPhase.IDLE
    current: int = 0
    total: int = 0
    message: str = ""
    batch_number: int | None = None
    total_batches: int | None = None
    correlation_id: str | None = None

    @property
    def active(self) -> bool:
        return self.phase not in (RunPhase.IDLE, RunPhase.DONE, RunPhase.ABORTED)

    def advance(self, phase: RunPhase, message: str = "", **changes: Any) -> RunState:
        return self.model_copy(update={"phase": phase, "message": message, **changes})


IDLE_STATE = RunState()

# Callbacks may be plain functions or coroutines.
ProgressCallback = Callable[[RunState], Awaitable[None] | None]
