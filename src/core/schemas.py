"""Core data models for the pipeline engine.

Records are frozen; the store swaps in a ``model_copy`` on every mutation so a
previously handed-out record is never changed underneath its holder.
"""

import logging
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

ALLOWED_PRIORITIES = ("low", "normal", "high", "urgent")

ActionKind = Literal["move", "note", "priority", "tag", "share", "export", "notice"]


class Stage(BaseModel):
    """A pipeline step (kanban column)."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    color_tag: str = "gray"
    is_locked: bool = False
    description: str = ""
    automation_hints: list[str] = Field(default_factory=list)

    @field_validator("id")
    @classmethod
    def id_not_empty(cls, v: str) -> str:
        if not v.strip():
            msg = "stage id must not be empty"
            raise ValueError(msg)
        return v.strip()


class _WireModel(BaseModel):
    """Frozen model that reads camelCase payloads and accepts field names too."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class Applicant(_WireModel):
    full_name: str = ""
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    location: str = ""
    skills: list[str] = Field(default_factory=list)
    resume_url: str | None = None

    @property
    def display_name(self) -> str:
        if self.full_name:
            return self.full_name
        joined = f"{self.first_name} {self.last_name}".strip()
        return joined or "Unknown Candidate"


class JobRef(_WireModel):
    """The job posting an application belongs to."""

    id: int | None = None
    title: str = ""
    location: str = ""


class CandidateRecord(_WireModel):
    """A job application tracked through the pipeline."""

    id: int
    stage: str
    status: str = "pending"
    priority: str = "normal"
    rating: int = Field(default=0, ge=0, le=5)
    tags: list[str] = Field(default_factory=list)
    flagged: bool = False
    is_new_lead: bool = False
    contact_visible: bool | None = None
    contact_revealed: bool = False
    job_match_score: int | None = Field(default=None, ge=0, le=100)
    applied_at: datetime | None = None
    created_at: datetime | None = None
    applicant: Applicant = Field(default_factory=Applicant)
    job: JobRef | None = None
    notes: str | None = None
    resume_url: str | None = None
    is_overdue: bool = False
    version: int | None = None

    @field_validator("priority")
    @classmethod
    def priority_in_allowed(cls, v: str) -> str:
        v = v.lower().strip()
        if v not in ALLOWED_PRIORITIES:
            msg = f"priority must be one of {list(ALLOWED_PRIORITIES)}, got '{v}'"
            raise ValueError(msg)
        return v

    @field_validator("tags")
    @classmethod
    def tags_unique(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(t for t in v if t))

    @property
    def has_resume(self) -> bool:
        return bool(self.resume_url or self.applicant.resume_url)

    @property
    def activity_date(self) -> date | None:
        """Date used by date-range filters: applied, else created."""
        stamp = self.applied_at or self.created_at
        return stamp.date() if stamp is not None else None


class DateRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: date | None = None
    end: date | None = None


class FilterState(_WireModel):
    """Structured filters plus free-text search for the visible set."""

    search: str = ""
    status: str | None = None
    priority: str | None = None
    job_id: int | None = None
    rating: int | None = Field(default=None, ge=0, le=5)
    has_resume: Literal["any", "with", "without"] = "any"
    date_range: DateRange | None = None
    job_match_min: int | None = Field(default=None, ge=0, le=100)
    tags: list[str] = Field(default_factory=list)
    only_revealed_contacts: bool = False

    @field_validator("status", "priority")
    @classmethod
    def all_means_unset(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip().lower()
        return None if v in ("", "all") else v

    @field_validator("search")
    @classmethod
    def search_stripped(cls, v: str) -> str:
        return v.strip()

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "FilterState":
        """Build a FilterState, dropping unknown keys and malformed values.

        Never raises: a filter the caller got wrong is ignored, not an error.
        """
        by_alias = {to_camel(name): name for name in cls.model_fields}
        data: dict[str, Any] = {}
        for key, value in raw.items():
            name = key if key in cls.model_fields else by_alias.get(key)
            if name is None:
                logger.debug("Ignoring unknown filter field '%s'", key)
                continue
            data[name] = value

        for _ in range(len(data) + 1):
            try:
                return cls.model_validate(data)
            except ValidationError as e:
                bad = set()
                for err in e.errors():
                    if err["loc"]:
                        key = str(err["loc"][0])
                        bad.add(by_alias.get(key, key))
                bad &= set(data)
                if not bad:
                    break
                for name in bad:
                    logger.debug("Ignoring malformed filter value for '%s': %r", name, data[name])
                    del data[name]

        logger.warning("Filter state could not be parsed, falling back to no filters")
        return cls()

    def server_params(self) -> dict[str, str]:
        """The subset of filters the application-data service can apply itself."""
        params: dict[str, str] = {}
        if self.status:
            params["status"] = self.status
        if self.job_id is not None:
            params["jobId"] = str(self.job_id)
        return params


class Notice(BaseModel):
    """A user-facing, non-blocking message."""

    model_config = ConfigDict(frozen=True)

    title: str
    message: str
    url: str | None = None
    level: Literal["info", "error"] = "info"


class PendingAction(BaseModel):
    """An in-flight or modal-pending operation; one per workspace view."""

    model_config = ConfigDict(frozen=True)

    kind: ActionKind
    target_ids: list[int] = Field(default_factory=list)
    payload: dict[str, Any] = Field(default_factory=dict)
    notice: Notice | None = None
