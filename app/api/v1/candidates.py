from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.db.models import Candidate
from app.dependencies import get_db
from app.processing.intake import PLACEHOLDER_PREFIX
from app.schemas.processing import ProcessingCandidate, ProcessingStatusResponse
from app.schemas.upload import CleanupResponse

logger = logging.getLogger(__name__)

router = APIRouter()

_STATUS_LIMIT = 50
_VISIBLE_STATES = ("processing", "completed")


def _to_processing_candidate(candidate: Candidate) -> ProcessingCandidate:
    return ProcessingCandidate(
        id=str(candidate.id),
        full_name=candidate.full_name,
        status=candidate.processing_status,  # type: ignore[arg-type]
        batch_id=str(candidate.batch_id) if candidate.batch_id else None,
        started_at=candidate.batch_created_at,
        completed_at=candidate.processing_completed_at,
    )


@router.get("/processing-status", response_model=ProcessingStatusResponse)
async def processing_status(
    batch_id: UUID | None = Query(default=None),
    since: datetime | None = Query(default=None),
    session: AsyncSession = Depends(get_db),
) -> ProcessingStatusResponse:
    """Current CV analysis progress, optionally scoped to one upload batch.

    With ``since``, completed rows are limited to those finished after that instant;
    rows still processing are always included.
    """
    rows_stmt = select(Candidate).where(Candidate.processing_status.in_(_VISIBLE_STATES))
    counts_stmt = (
        select(Candidate.processing_status, func.count())
        .where(Candidate.processing_status.in_(_VISIBLE_STATES))
        .group_by(Candidate.processing_status)
    )
    if batch_id is not None:
        rows_stmt = rows_stmt.where(Candidate.batch_id == batch_id)
        counts_stmt = counts_stmt.where(Candidate.batch_id == batch_id)
    if since is not None:
        rows_stmt = rows_stmt.where(
            or_(
                Candidate.processing_status == "processing",
                Candidate.processing_completed_at > since,
            )
        )
    rows_stmt = rows_stmt.order_by(Candidate.created_at.desc()).limit(_STATUS_LIMIT)

    rows = (await session.execute(rows_stmt)).scalars().all()
    counts = {status: int(n) for status, n in (await session.execute(counts_stmt)).all()}

    return ProcessingStatusResponse(
        candidates=[_to_processing_candidate(c) for c in rows],
        counts=counts,
    )


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_stale(session: AsyncSession = Depends(get_db)) -> CleanupResponse:
    """Fail CVs stuck in processing and drop the placeholders they left behind."""
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=settings.stale_processing_minutes)
    await session.execute(
        update(Candidate)
        .where(
            Candidate.processing_status == "processing",
            Candidate.created_at < cutoff,
        )
        .values(processing_status="failed")
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(
        delete(Candidate)
        .where(
            Candidate.processing_status == "failed",
            Candidate.full_name.like(f"{PLACEHOLDER_PREFIX}%"),
        )
        .returning(Candidate.id)
        .execution_options(synchronize_session=False)
    )
    deleted = len(result.scalars().all())
    await session.commit()

    logger.info("candidates.cleanup", extra={"deleted": deleted})
    return CleanupResponse(success=True, deleted=deleted)
