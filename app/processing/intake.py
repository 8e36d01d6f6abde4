from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Candidate
from app.schemas.upload import AnalysisMetadata, CandidateAnalysis

logger = logging.getLogger(__name__)

PLACEHOLDER_PREFIX = "Processing CV"


class InvalidCallbackPayload(ValueError):
    """The workflow posted something that is not an analysis result."""


def placeholder_name(position: int) -> str:
    """Display name for the n-th (1-based) CV of a batch until analysis lands."""
    return f"{PLACEHOLDER_PREFIX} {position}..."


def unwrap_callback_payload(payload: Any) -> list[dict[str, Any]]:
    """Normalise the shapes the workflow posts back into a list of analysis dicts.

    Accepted: a list of analyses (each optionally wrapped in ``output``),
    ``{"output": {...}}``, or a bare analysis with ``candidate_info``.
    """
    if isinstance(payload, list):
        items = [item.get("output", item) if isinstance(item, dict) else item for item in payload]
        return [item for item in items if isinstance(item, dict)]
    if isinstance(payload, dict):
        if isinstance(payload.get("output"), dict):
            return [payload["output"]]
        if "candidate_info" in payload:
            return [payload]
        raise InvalidCallbackPayload(f"unrecognised payload keys: {sorted(payload)}")
    raise InvalidCallbackPayload(f"unsupported payload type: {type(payload).__name__}")


async def _first_processing(session: AsyncSession, *criteria: Any, order_by: Any) -> Candidate | None:
    result = await session.execute(
        select(Candidate)
        .where(Candidate.processing_status == "processing", *criteria)
        .order_by(order_by)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def find_processing_candidate(
    metadata: AnalysisMetadata,
    session: AsyncSession,
    *,
    email: str | None = None,
) -> Candidate | None:
    """Locate the placeholder an analysis belongs to.

    Lookup order: the explicit candidate id, the oldest processing row of the
    batch, the newest processing row with the same email, and finally the
    processing row from the most recently created batch. Rows that already left
    ``processing`` are never matched.
    """
    if metadata.candidate_id is not None:
        candidate = await _first_processing(
            session, Candidate.id == metadata.candidate_id, order_by=Candidate.created_at.asc()
        )
        if candidate is not None:
            return candidate

    if metadata.batch_id is not None:
        candidate = await _first_processing(
            session, Candidate.batch_id == metadata.batch_id, order_by=Candidate.created_at.asc()
        )
        if candidate is not None:
            return candidate

    if email:
        candidate = await _first_processing(
            session, Candidate.email == email, order_by=Candidate.created_at.desc()
        )
        if candidate is not None:
            return candidate

    # Workflow dropped the metadata: take the latest upload still in flight
    candidate = await _first_processing(
        session, order_by=Candidate.batch_created_at.desc().nulls_last()
    )
    if candidate is not None:
        logger.warning("intake.matched_by_recency", extra={"candidate_id": str(candidate.id)})
    return candidate


def apply_analysis(candidate: Candidate, analysis: CandidateAnalysis, now: datetime) -> None:
    """Copy analysis fields onto the candidate and mark it completed."""
    info = analysis.candidate_info
    if info is not None:
        if info.full_name:
            candidate.full_name = info.full_name
        if info.email:
            candidate.email = info.email
    candidate.overall_summary = analysis.overall_summary
    candidate.qualification_score = analysis.qualification_score
    candidate.skills = list(analysis.key_skills)
    candidate.processing_status = "completed"
    candidate.processing_completed_at = now


async def mark_failed(candidate_ids: Sequence[uuid.UUID], session: AsyncSession) -> None:
    """Move still-processing placeholders to ``failed`` after a forwarding error."""
    if not candidate_ids:
        return
    await session.execute(
        update(Candidate)
        .where(
            Candidate.id.in_(list(candidate_ids)),
            Candidate.processing_status == "processing",
        )
        .values(processing_status="failed")
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    logger.info("intake.marked_failed", extra={"count": len(candidate_ids)})
