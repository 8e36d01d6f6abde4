from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime

import httpx

from app.config import settings
from app.schemas.processing import ProcessingStatusResponse

logger = logging.getLogger(__name__)

STATUS_PATH = "/api/v1/candidates/processing-status"


class StatusUnavailableError(Exception):
    """The status endpoint could not be reached or returned an unusable payload."""


class StatusSource(ABC):
    """Where the poller reads CV-processing status from."""

    @abstractmethod
    async def fetch(
        self, batch_id: str | None = None, since: datetime | None = None
    ) -> ProcessingStatusResponse:
        """Return the current status view. Raises StatusUnavailableError on failure."""
        ...


class HttpStatusSource(StatusSource):
    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self._client = client
        self._url = (base_url or settings.api_base_url).rstrip("/") + STATUS_PATH
        self._timeout = timeout if timeout is not None else settings.status_request_timeout_s

    async def fetch(
        self, batch_id: str | None = None, since: datetime | None = None
    ) -> ProcessingStatusResponse:
        params: dict[str, str] = {}
        if batch_id:
            params["batch_id"] = batch_id
        if since is not None:
            params["since"] = since.isoformat()

        try:
            response = await self._client.get(self._url, params=params, timeout=self._timeout)
            response.raise_for_status()
            # ValidationError and JSON decode errors are both ValueErrors
            return ProcessingStatusResponse.model_validate(response.json())
        except (httpx.HTTPError, ValueError) as exc:
            raise StatusUnavailableError(f"processing status fetch failed: {exc}") from exc
