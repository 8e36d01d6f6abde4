from __future__ import annotations

from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class UploadFileMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    applicant_type: str = "external"
    job_order_id: str | None = None


class UploadResponse(BaseModel):
    status: Literal["processing"]
    batch_id: UUID
    candidate_ids: list[UUID]
    message: str


class CandidateInfo(BaseModel):
    full_name: str | None = None
    email: str | None = None


class AnalysisMetadata(BaseModel):
    candidate_id: UUID | None = None
    batch_id: UUID | None = None
    uploader_name: str | None = None


class CandidateAnalysis(BaseModel):
    """One CV analysis result posted back by the workflow."""

    candidate_info: CandidateInfo | None = None
    overall_summary: str | None = None
    qualification_score: float | None = None
    key_skills: list[str] = Field(default_factory=list)
    metadata: AnalysisMetadata = Field(default_factory=AnalysisMetadata)


class CallbackResponse(BaseModel):
    success: bool
    updated: int


class CleanupResponse(BaseModel):
    success: bool
    deleted: int
