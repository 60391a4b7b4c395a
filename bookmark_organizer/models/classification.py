"""Classifier output models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from bookmark_organizer.models.llm.llm_models import TokenUsage

KEEP_CURRENT = "KEEP_CURRENT"


class Assignment(BaseModel):
    """Destination chosen for one submitted item."""

    model_config = ConfigDict(frozen=True)

    item_id: str
    index: int = Field(description="1-based position of the item within its batch.")
    destination: str = Field(description="A vocabulary member or KEEP_CURRENT.")

    @property
    def keeps_current(self) -> bool:
        return self.destination == KEEP_CURRENT


class Coercion(BaseModel):
    """Record of a returned destination that was outside the vocabulary."""

    model_config = ConfigDict(frozen=True)

    item_id: str
    returned: str
    coerced_to: str


class BatchClassification(BaseModel):
    model_config = ConfigDict(frozen=True)

    assignments: tuple[Assignment, ...]
    usage: TokenUsage = Field(default_factory=TokenUsage)
    cost_usd: float | None = None
    coercions: tuple[Coercion, ...] = ()
    attempts: int = 1
    model: str | None = None

    def destination_counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for assignment in self.assignments:
            counts[assignment.destination] = counts.get(assignment.destination, 0) + 1
        return counts
