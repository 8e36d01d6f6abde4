from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

ProcessingState = Literal["processing", "completed", "failed"]


class ProcessingCandidate(BaseModel):
    """A candidate whose CV is (or was) being analysed by the external workflow.

    Accepts both the snake_case column names used by the database view and the
    camelCase names some clients send.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    full_name: str | None = None
    status: ProcessingState = Field(
        validation_alias=AliasChoices("status", "processing_status")
    )
    batch_id: str | None = Field(
        default=None, validation_alias=AliasChoices("batch_id", "batchId")
    )
    started_at: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("started_at", "startedAt", "batch_created_at"),
    )
    completed_at: datetime | None = Field(
        default=None, validation_alias=AliasChoices("completed_at", "completedAt")
    )


class ProcessingStatusResponse(BaseModel):
    candidates: list[ProcessingCandidate] = Field(default_factory=list)
    counts: dict[str, int] = Field(default_factory=dict)  # status -> count, missing = 0

    def count(self, status: ProcessingState) -> int:
        return self.counts.get(status, 0)
