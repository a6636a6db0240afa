"""HTTP client for the application-data service using httpx."""

import logging
from types import TracebackType
from typing import Any

import httpx

from src.backend.base import ExportResponse, PipelineBackend, reply_message
from src.core.config import BackendConfig
from src.core.errors import BackendError

logger = logging.getLogger(__name__)


class HttpBackend(PipelineBackend):
    """Async context manager that owns one httpx client.

    Usage::

        async with HttpBackend(config) as backend:
            apps = await backend.query_applications({"status": "pending"})

    A ready-made ``httpx.AsyncClient`` may be passed in (tests use one with a
    ``MockTransport``); the backend then does not close it.
    """

    def __init__(self, config: BackendConfig, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            msg = "HttpBackend not entered; use 'async with'"
            raise RuntimeError(msg)
        return self._client

    async def __aenter__(self) -> "HttpBackend":
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self._config.api_token:
                headers["Authorization"] = f"Bearer {self._config.api_token}"
            self._client = httpx.AsyncClient(
                base_url=self._config.base_url,
                timeout=self._config.timeout_s,
                headers=headers,
            )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def query_applications(self, params: dict[str, str]) -> list[dict[str, Any]]:
        response = await self._send("GET", self._config.paths.applications, params=params)
        data = _json_body(response)
        applications = data.get("applications") if isinstance(data, dict) else None
        if not isinstance(applications, list):
            logger.warning("Application query returned no 'applications' list")
            return []
        return [a for a in applications if isinstance(a, dict)]

    async def update_application_stage(self, application_id: int, stage: str) -> dict[str, Any]:
        response = await self._send(
            "PATCH",
            self._config.paths.applications,
            json={"applicationId": application_id, "stage": stage},
        )
        data = _json_body(response)
        return data if isinstance(data, dict) else {}

    async def bulk_application_action(
        self,
        application_ids: list[int],
        action: str,
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        response = await self._send(
            "POST",
            self._config.paths.bulk,
            json={"applicationIds": application_ids, "action": action, "payload": payload},
        )
        data = _json_body(response)
        if not isinstance(data, dict):
            return {}
        if data.get("success") is False:
            raise BackendError(reply_message(data, "Bulk action failed"), response.status_code)
        return data

    async def export_applications(self, application_ids: list[int], fmt: str) -> ExportResponse:
        response = await self._send(
            "POST",
            self._config.paths.export,
            json={"applicationIds": application_ids, "format": fmt},
            fallback="Failed to export applications",
        )
        content_type = response.headers.get("content-type", "")
        if content_type.startswith("application/json"):
            data = _json_body(response)
            return ExportResponse(
                content_type=content_type,
                data=data if isinstance(data, dict) else {},
            )
        return ExportResponse(
            content=response.content,
            content_type=content_type,
            content_disposition=response.headers.get("content-disposition"),
        )

    async def reveal_contact(self, application_id: int) -> dict[str, Any]:
        response = await self._send(
            "POST",
            self._config.paths.reveal_contact,
            json={"applicationId": application_id},
            fallback="Failed to reveal contact information",
        )
        data = _json_body(response)
        return data if isinstance(data, dict) else {}

    async def _send(
        self,
        method: str,
        path: str,
        *,
        fallback: str = "Request failed",
        **kwargs: Any,
    ) -> httpx.Response:
        """Issue one request, turning transport errors and non-2xx replies into BackendError."""
        try:
            response = await self.client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise BackendError(f"{fallback}: {e}") from e

        if response.is_success:
            return response

        message = reply_message(_json_body(response), fallback)
        logger.warning("%s %s returned %d: %s", method, path, response.status_code, message)
        raise BackendError(message, response.status_code)


def _json_body(response: httpx.Response) -> Any:
    """Decode a JSON body, returning None when it is not JSON."""
    try:
        return response.json()
    except ValueError:
        return None
