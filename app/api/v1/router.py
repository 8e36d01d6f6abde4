from __future__ import annotations

from fastapi import APIRouter

from app.api.v1 import candidates, webhooks

router = APIRouter()
router.include_router(candidates.router, prefix="/candidates", tags=["candidates"])
router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
