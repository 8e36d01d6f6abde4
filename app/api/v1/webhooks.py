from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any

import httpx
from fastapi import APIRouter, Body, Depends, File, Form, HTTPException, UploadFile
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.db.models import Candidate
from app.dependencies import get_db, get_http_client
from app.processing.intake import (
    InvalidCallbackPayload,
    apply_analysis,
    find_processing_candidate,
    mark_failed,
    placeholder_name,
    unwrap_callback_payload,
)
from app.schemas.upload import (
    CallbackResponse,
    CandidateAnalysis,
    UploadFileMetadata,
    UploadResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _parse_file_metadata(raw: str, n_files: int) -> list[UploadFileMetadata]:
    """One metadata object per file; missing or malformed entries fall back to defaults."""
    try:
        entries = json.loads(raw or "[]")
    except ValueError:
        entries = []
    if not isinstance(entries, list):
        entries = []

    parsed: list[UploadFileMetadata] = []
    for i in range(n_files):
        entry = entries[i] if i < len(entries) and isinstance(entries[i], dict) else {}
        try:
            parsed.append(UploadFileMetadata.model_validate(entry))
        except ValidationError:
            parsed.append(UploadFileMetadata())
    return parsed


@router.post("/cv-upload", response_model=UploadResponse)
async def upload_cvs(
    files: list[UploadFile] = File(default=[]),
    metadata: str = Form(default="[]"),
    uploader_name: str | None = Form(default=None),
    upload_timestamp: str | None = Form(default=None),
    session: AsyncSession = Depends(get_db),
    client: httpx.AsyncClient = Depends(get_http_client),
) -> UploadResponse:
    """Accept a batch of CVs and hand them to the analysis workflow.

    One ``processing`` placeholder is created per file before forwarding, so the
    status endpoint can report progress while the workflow runs.
    """
    if not files:
        raise HTTPException(status_code=400, detail="No files uploaded")
    if not settings.cv_webhook_url:
        raise HTTPException(status_code=503, detail="CV processing service is not configured")

    payloads: list[tuple[str, bytes, str]] = []
    for upload in files:
        content = await upload.read()
        if not content:
            raise HTTPException(status_code=400, detail=f"Uploaded file is empty: {upload.filename}")
        if len(content) > settings.max_upload_bytes:
            raise HTTPException(status_code=413, detail=f"File too large: {upload.filename}")
        payloads.append(
            (upload.filename or "cv", content, upload.content_type or "application/octet-stream")
        )

    file_meta = _parse_file_metadata(metadata, len(payloads))
    batch_id = uuid.uuid4()
    created_at = datetime.now(timezone.utc)

    placeholders = [
        Candidate(
            id=uuid.uuid4(),
            full_name=placeholder_name(i + 1),
            applicant_type=meta.applicant_type,
            uploaded_by=uploader_name,
            processing_status="processing",
            batch_id=batch_id,
            batch_created_at=created_at,
        )
        for i, meta in enumerate(file_meta)
    ]
    session.add_all(placeholders)
    await session.commit()
    candidate_ids = [c.id for c in placeholders]

    enriched = [
        {**meta.model_dump(), "batch_id": str(batch_id), "candidate_id": str(cid)}
        for meta, cid in zip(file_meta, candidate_ids)
    ]
    form = {
        "uploader_name": uploader_name or "",
        "upload_timestamp": upload_timestamp or created_at.isoformat(),
        "total_files": str(len(payloads)),
        "batch_id": str(batch_id),
        "callback_url": settings.webhook_callback_url,
        "metadata": json.dumps(enriched),
    }

    logger.info(
        "webhooks.cv_upload.forward",
        extra={"batch_id": str(batch_id), "files": len(payloads), "uploader": uploader_name},
    )
    try:
        response = await client.post(
            settings.cv_webhook_url,
            data=form,
            files=[("files", payload) for payload in payloads],
            timeout=settings.cv_webhook_timeout_s,
        )
    except httpx.HTTPError as exc:
        logger.error(
            "webhooks.cv_upload.unreachable",
            extra={"batch_id": str(batch_id), "error": str(exc)},
        )
        await mark_failed(candidate_ids, session)
        raise HTTPException(
            status_code=503,
            detail="CV processing service is unavailable. Please try again later.",
        ) from exc

    if response.status_code >= 400:
        logger.error(
            "webhooks.cv_upload.rejected",
            extra={"batch_id": str(batch_id), "status": response.status_code, "body": response.text[:500]},
        )
        await mark_failed(candidate_ids, session)
        raise HTTPException(status_code=503, detail="CV processing service returned an error")

    return UploadResponse(
        status="processing",
        batch_id=batch_id,
        candidate_ids=candidate_ids,
        message="CVs are being processed by the AI pipeline.",
    )


@router.post("/cv-callback", response_model=CallbackResponse)
async def cv_callback(
    payload: Any = Body(...),
    session: AsyncSession = Depends(get_db),
) -> CallbackResponse:
    """Receive analysis results and move the matching placeholders to ``completed``."""
    try:
        items = unwrap_callback_payload(payload)
    except InvalidCallbackPayload as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    now = datetime.now(timezone.utc)
    updated = 0
    for item in items:
        try:
            analysis = CandidateAnalysis.model_validate(item)
        except ValidationError as exc:
            logger.warning("webhooks.cv_callback.invalid_item", extra={"error": str(exc)})
            continue
        if analysis.candidate_info is None:
            continue

        candidate = await find_processing_candidate(
            analysis.metadata, session, email=analysis.candidate_info.email
        )
        if candidate is None:
            candidate = Candidate(
                id=uuid.uuid4(),
                full_name=analysis.candidate_info.full_name or "Unknown",
                applicant_type="external",
                uploaded_by=analysis.metadata.uploader_name,
                batch_id=analysis.metadata.batch_id,
                batch_created_at=now,
            )
            session.add(candidate)

        apply_analysis(candidate, analysis, now)
        updated += 1

    await session.commit()
    logger.info("webhooks.cv_callback", extra={"received": len(items), "updated": updated})
    return CallbackResponse(success=True, updated=updated)
