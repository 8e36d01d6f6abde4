from __future__ import annotations

import json
import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from httpx import ASGITransport

from app.config import settings
from app.db.models import Candidate
from app.dependencies import get_db, get_http_client
from app.main import app

WORKFLOW_URL = "http://workflow.test/webhook/cv"


def _make_session() -> MagicMock:
    session = MagicMock()
    session.add_all = MagicMock()
    session.add = MagicMock()
    session.commit = AsyncMock()
    session.execute = AsyncMock()
    return session


def _mock_db(session: MagicMock):
    async def _get_db():
        return session
    return _get_db


def _mock_http(handler):
    async def _get_http_client():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            yield client
    return _get_http_client


async def _post_upload(files, data=None) -> httpx.Response:
    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        return await client.post("/api/v1/webhooks/cv-upload", files=files, data=data or {})


@pytest.fixture(autouse=True)
def _clear_overrides():
    yield
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# CV upload proxy
# ---------------------------------------------------------------------------


async def test_upload_creates_placeholders_and_forwards() -> None:
    session = _make_session()
    forwarded: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        forwarded.append(request)
        return httpx.Response(200, json={"accepted": True})

    app.dependency_overrides[get_db] = _mock_db(session)
    app.dependency_overrides[get_http_client] = _mock_http(handler)
    with patch.object(settings, "cv_webhook_url", WORKFLOW_URL):
        response = await _post_upload(
            files=[
                ("files", ("ana.pdf", b"%PDF-1.4 ana", "application/pdf")),
                ("files", ("ben.pdf", b"%PDF-1.4 ben", "application/pdf")),
            ],
            data={
                "metadata": json.dumps([{"applicant_type": "internal", "job_order_id": "jo-7"}]),
                "uploader_name": "Rita",
            },
        )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "processing"
    assert len(body["candidate_ids"]) == 2

    placeholders: list[Candidate] = session.add_all.call_args.args[0]
    assert [p.full_name for p in placeholders] == ["Processing CV 1...", "Processing CV 2..."]
    assert {p.processing_status for p in placeholders} == {"processing"}
    assert {str(p.batch_id) for p in placeholders} == {body["batch_id"]}
    assert placeholders[0].applicant_type == "internal"
    assert placeholders[1].applicant_type == "external"
    assert placeholders[0].uploaded_by == "Rita"

    request = forwarded[0]
    assert str(request.url) == WORKFLOW_URL
    content = request.content
    assert b"%PDF-1.4 ana" in content and b"%PDF-1.4 ben" in content
    assert body["batch_id"].encode() in content
    assert str(placeholders[1].id).encode() in content
    assert b"jo-7" in content


async def test_upload_marks_placeholders_failed_when_workflow_rejects() -> None:
    session = _make_session()

    app.dependency_overrides[get_db] = _mock_db(session)
    app.dependency_overrides[get_http_client] = _mock_http(lambda request: httpx.Response(500))
    with patch.object(settings, "cv_webhook_url", WORKFLOW_URL):
        response = await _post_upload(files=[("files", ("ana.pdf", b"%PDF", "application/pdf"))])

    assert response.status_code == 503
    assert response.json()["detail"] == "CV processing service returned an error"
    session.execute.assert_awaited_once()
    assert session.commit.await_count == 2


async def test_upload_reports_unreachable_workflow() -> None:
    session = _make_session()

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    app.dependency_overrides[get_db] = _mock_db(session)
    app.dependency_overrides[get_http_client] = _mock_http(handler)
    with patch.object(settings, "cv_webhook_url", WORKFLOW_URL):
        response = await _post_upload(files=[("files", ("ana.pdf", b"%PDF", "application/pdf"))])

    assert response.status_code == 503
    assert "unavailable" in response.json()["detail"]
    session.execute.assert_awaited_once()


async def test_upload_rejects_oversize_file() -> None:
    session = _make_session()

    app.dependency_overrides[get_db] = _mock_db(session)
    app.dependency_overrides[get_http_client] = _mock_http(lambda request: httpx.Response(200))
    with patch.object(settings, "cv_webhook_url", WORKFLOW_URL), patch.object(settings, "max_upload_bytes", 8):
        response = await _post_upload(files=[("files", ("big.pdf", b"0123456789", "application/pdf"))])

    assert response.status_code == 413
    session.add_all.assert_not_called()


async def test_upload_without_files_is_rejected() -> None:
    session = _make_session()

    app.dependency_overrides[get_db] = _mock_db(session)
    app.dependency_overrides[get_http_client] = _mock_http(lambda request: httpx.Response(200))
    with patch.object(settings, "cv_webhook_url", WORKFLOW_URL):
        response = await _post_upload(files=None, data={"uploader_name": "Rita"})

    assert response.status_code == 400
    assert response.json()["detail"] == "No files uploaded"
    session.add_all.assert_not_called()


async def test_upload_without_configured_workflow() -> None:
    app.dependency_overrides[get_db] = _mock_db(_make_session())
    app.dependency_overrides[get_http_client] = _mock_http(lambda request: httpx.Response(200))
    with patch.object(settings, "cv_webhook_url", ""):
        response = await _post_upload(files=[("files", ("ana.pdf", b"%PDF", "application/pdf"))])

    assert response.status_code == 503


# ---------------------------------------------------------------------------
# Analysis callback
# ---------------------------------------------------------------------------


def _lookup_result(candidate: Candidate | None) -> MagicMock:
    result = MagicMock()
    result.scalar_one_or_none.return_value = candidate
    return result


async def test_callback_completes_matching_placeholder() -> None:
    placeholder = Candidate(
        id=uuid.uuid4(), full_name="Processing CV 1...", processing_status="processing"
    )
    session = _make_session()
    session.execute = AsyncMock(return_value=_lookup_result(placeholder))

    payload = [
        {
            "output": {
                "candidate_info": {"full_name": "Ana Cruz", "email": "ana@example.com"},
                "overall_summary": "Strong data engineer",
                "qualification_score": 87,
                "key_skills": ["Python", "SQL"],
                "metadata": {"candidate_id": str(placeholder.id)},
            }
        },
        {"metadata": {"batch_id": str(uuid.uuid4())}},  # no candidate_info: skipped
    ]

    app.dependency_overrides[get_db] = _mock_db(session)
    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post("/api/v1/webhooks/cv-callback", json=payload)

    assert response.status_code == 200
    assert response.json() == {"success": True, "updated": 1}
    assert placeholder.processing_status == "completed"
    assert placeholder.full_name == "Ana Cruz"
    assert placeholder.skills == ["Python", "SQL"]
    assert placeholder.processing_completed_at is not None
    session.add.assert_not_called()
    session.commit.assert_awaited_once()


async def test_callback_creates_candidate_when_no_placeholder_matches() -> None:
    session = _make_session()
    session.execute = AsyncMock(return_value=_lookup_result(None))

    payload = {
        "candidate_info": {"full_name": "Ben Reyes"},
        "metadata": {"batch_id": str(uuid.uuid4()), "uploader_name": "Rita"},
    }

    app.dependency_overrides[get_db] = _mock_db(session)
    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post("/api/v1/webhooks/cv-callback", json=payload)

    assert response.status_code == 200
    created: Candidate = session.add.call_args.args[0]
    assert created.full_name == "Ben Reyes"
    assert created.processing_status == "completed"
    assert created.uploaded_by == "Rita"


async def test_callback_rejects_unknown_shape() -> None:
    app.dependency_overrides[get_db] = _mock_db(_make_session())
    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post("/api/v1/webhooks/cv-callback", json={"unexpected": True})

    assert response.status_code == 400
