"""Abstract base class for the application-data service."""

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel


class ExportResponse(BaseModel):
    """Reply to an export request: either a file body or a JSON document."""

    content: bytes | None = None
    content_type: str = ""
    content_disposition: str | None = None
    data: dict[str, Any] | None = None

    @property
    def is_binary(self) -> bool:
        return self.content is not None


class PipelineBackend(ABC):
    """Base class that every application-data client must implement.

    Implementations raise ``BackendError`` for any failed call; the wire
    format is owned by the service, not by the engine.
    """

    @abstractmethod
    async def query_applications(self, params: dict[str, str]) -> list[dict[str, Any]]:
        """Return raw application payloads matching the server-side filters."""

    @abstractmethod
    async def update_application_stage(self, application_id: int, stage: str) -> dict[str, Any]:
        """Persist a stage change and return the updated application payload."""

    @abstractmethod
    async def bulk_application_action(
        self,
        application_ids: list[int],
        action: str,
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        """Apply one server action verb to every listed application in one request."""

    @abstractmethod
    async def export_applications(self, application_ids: list[int], fmt: str) -> ExportResponse:
        """Export the listed applications in the given format."""

    @abstractmethod
    async def reveal_contact(self, application_id: int) -> dict[str, Any]:
        """Spend a credit to reveal an applicant's contact details."""


def reply_message(data: Any, fallback: str) -> str:
    """Pick the human-readable error out of a service reply."""
    if isinstance(data, dict):
        for key in ("error", "message"):
            value = data.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return fallback
