"""In-memory record store with optimistic mutation, reconcile and rollback.

Every mutation returns a snapshot of the fields it touched, so any change can
be undone exactly. ``with_optimistic_update`` wraps the apply/confirm/rollback
cycle so call sites never hand-roll their own copies.
"""

import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from datetime import datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from src.backend.base import PipelineBackend
from src.core.schemas import ALLOWED_PRIORITIES, Applicant, CandidateRecord, JobRef

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)
R = TypeVar("R")

Snapshot = dict[str, Any]
Rollback = Callable[[], None]

_timestamp = TypeAdapter(datetime)

# Wire key -> record field, for partial server replies.
_DTO_FIELDS: dict[str, str] = {
    "stage": "stage",
    "status": "status",
    "priority": "priority",
    "rating": "rating",
    "tags": "tags",
    "flagged": "flagged",
    "isNewLead": "is_new_lead",
    "contactVisible": "contact_visible",
    "contactRevealed": "contact_revealed",
    "jobMatchScore": "job_match_score",
    "appliedAt": "applied_at",
    "createdAt": "created_at",
    "notes": "notes",
    "resumeUrl": "resume_url",
    "isOverdue": "is_overdue",
    "version": "version",
}


class RecordStore(Generic[T]):
    """Id-keyed cache of frozen pydantic records.

    Records are replaced, never mutated in place. The key is the record's
    ``id`` attribute.
    """

    def __init__(self, records: Iterable[T] = ()) -> None:
        self._records: dict[int, T] = {}
        self.replace_all(records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    def get(self, record_id: int) -> T | None:
        return self._records.get(record_id)

    def all(self) -> list[T]:
        return list(self._records.values())

    def replace_all(self, records: Iterable[T]) -> None:
        self._records = {r.id: r for r in records}  # type: ignore[attr-defined]

    def apply_local_mutation(self, record_id: int, changes: Mapping[str, Any]) -> Snapshot:
        """Apply ``changes`` without server confirmation.

        Returns the previous values of exactly the touched fields.
        """
        current = self._require(record_id)
        snapshot = {name: getattr(current, name) for name in changes}
        self._records[record_id] = _merge(current, changes)
        return snapshot

    def reconcile(self, record_id: int, server_fields: Mapping[str, Any]) -> T:
        """Merge authoritative server fields; fields the server did not send are kept.

        A field whose value fails validation is skipped, not applied.
        """
        current = self._require(record_id)
        try:
            merged = _merge(current, server_fields)
        except ValidationError:
            merged = current
            for name, value in server_fields.items():
                try:
                    merged = _merge(merged, {name: value})
                except ValidationError:
                    logger.warning(
                        "Ignoring invalid server value for record %d field '%s': %r",
                        record_id, name, value,
                    )
        self._records[record_id] = merged
        return merged

    def rollback(self, record_id: int, snapshot: Snapshot) -> None:
        """Restore the fields captured by ``apply_local_mutation``."""
        current = self._records.get(record_id)
        if current is None:
            logger.debug("Rollback skipped: record %d no longer cached", record_id)
            return
        self._records[record_id] = current.model_copy(update=snapshot)

    def _require(self, record_id: int) -> T:
        record = self._records.get(record_id)
        if record is None:
            msg = f"Unknown record {record_id}"
            raise KeyError(msg)
        return record


def _merge(record: T, changes: Mapping[str, Any]) -> T:
    """Validated copy of ``record`` with ``changes`` applied."""
    return type(record).model_validate({**record.model_dump(), **changes})


def apply_optimistic(store: RecordStore[T], record_id: int, changes: Mapping[str, Any]) -> Rollback:
    """Apply ``changes`` now and return a closure that undoes them."""
    snapshot = store.apply_local_mutation(record_id, changes)

    def rollback() -> None:
        store.rollback(record_id, snapshot)

    return rollback


async def with_optimistic_update(
    store: RecordStore[T],
    record_id: int,
    changes: Mapping[str, Any],
    confirm: Callable[[], Awaitable[R]],
    *,
    is_current: Callable[[], bool] = lambda: True,
) -> R:
    """Apply ``changes`` optimistically, then await ``confirm``.

    On any failure, cancellation included, the touched fields are restored
    (unless ``is_current`` reports that a newer update superseded this one)
    and the exception is re-raised for the caller to report.
    """
    rollback = apply_optimistic(store, record_id, changes)
    try:
        return await confirm()
    except BaseException:
        if is_current():
            rollback()
        else:
            logger.debug("Record %d changed again while in flight, rollback skipped", record_id)
        raise


class CandidateStore(RecordStore[CandidateRecord]):
    """Candidate cache backed by the application-data service."""

    def __init__(self, backend: PipelineBackend, new_stage: str = "new") -> None:
        super().__init__()
        self._backend = backend
        self._new_stage = new_stage

    async def load(self, filter_query: dict[str, str]) -> list[CandidateRecord]:
        """Query the service and replace the whole cache. BackendError propagates."""
        payloads = await self._backend.query_applications(filter_query)
        records = []
        for dto in payloads:
            record = normalize_application(dto, new_stage=self._new_stage)
            if record is not None:
                records.append(record)
        self.replace_all(records)
        skipped = len(payloads) - len(records)
        if skipped:
            logger.warning("Skipped %d malformed application payloads", skipped)
        logger.info("Loaded %d applications", len(records))
        return records


def normalize_application(dto: Mapping[str, Any], new_stage: str = "new") -> CandidateRecord | None:
    """Build a CandidateRecord from a service payload, defaulting what is missing.

    Returns None when the payload has no usable id.
    """
    try:
        record_id = int(dto["id"])
    except (KeyError, TypeError, ValueError):
        logger.warning("Application payload without a usable id: %r", dto.get("id"))
        return None

    stage = str(dto.get("stage") or new_stage)
    priority = str(dto.get("priority") or "normal").lower().strip()
    if priority not in ALLOWED_PRIORITIES:
        logger.debug("Application %d has unknown priority '%s'", record_id, priority)
        priority = "normal"

    raw_applicant = dto.get("applicant")
    applicant = _applicant(raw_applicant if isinstance(raw_applicant, Mapping) else {})
    raw_tags = dto.get("tags")

    fields: dict[str, Any] = {
        "id": record_id,
        "stage": stage,
        "status": str(dto.get("status") or "pending"),
        "priority": priority,
        "rating": _clamp(dto.get("rating"), 0, 5) or 0,
        "tags": [str(t) for t in raw_tags] if isinstance(raw_tags, list) else [],
        "flagged": _flag(dto.get("flagged"), stage == new_stage),
        "is_new_lead": _flag(dto.get("isNewLead"), stage == new_stage),
        "contact_visible": dto.get("contactVisible") if isinstance(dto.get("contactVisible"), bool) else None,
        "contact_revealed": dto.get("contactRevealed") is True,
        "job_match_score": _clamp(dto.get("jobMatchScore"), 0, 100),
        "applied_at": _parse_timestamp(dto.get("appliedAt")),
        "created_at": _parse_timestamp(dto.get("createdAt")),
        "applicant": applicant,
        "job": _job(dto.get("job")),
        "notes": dto.get("notes") if isinstance(dto.get("notes"), str) else None,
        "resume_url": dto.get("resumeUrl") or None,
        "is_overdue": dto.get("isOverdue") is True,
        "version": _clamp(dto.get("version"), 0, None),
    }
    try:
        return CandidateRecord.model_validate(fields)
    except ValidationError as e:
        logger.warning("Application %d failed validation: %s", record_id, e)
        return None


def fields_from_dto(dto: Mapping[str, Any]) -> dict[str, Any]:
    """Record fields present in a (possibly partial) server reply.

    Only keys the server actually sent are returned, so a merge never
    clobbers local fields the reply did not mention.
    """
    fields: dict[str, Any] = {}
    for key, name in _DTO_FIELDS.items():
        if key not in dto:
            continue
        value = dto[key]
        if name in ("applied_at", "created_at"):
            value = _parse_timestamp(value)
        if value is None and name not in ("notes", "job_match_score"):
            continue
        fields[name] = value
    if isinstance(dto.get("applicant"), Mapping):
        fields["applicant"] = _applicant(dto["applicant"])
    return fields


def _applicant(raw: Mapping[str, Any]) -> Applicant:
    data = {
        "full_name": raw.get("fullName"),
        "first_name": raw.get("firstName"),
        "last_name": raw.get("lastName"),
        "email": raw.get("email"),
        "phone": raw.get("phone") or raw.get("phoneNumber"),
        "location": raw.get("location"),
        "resume_url": raw.get("resumeUrl"),
    }
    clean = {k: str(v) for k, v in data.items() if v is not None}
    skills = raw.get("skills")
    clean["skills"] = [str(s) for s in skills] if isinstance(skills, list) else []
    return Applicant.model_validate(clean)


def _job(raw: Any) -> JobRef | None:
    if not isinstance(raw, Mapping):
        return None
    data = {k: raw.get(k) for k in ("id", "title", "location") if raw.get(k) is not None}
    try:
        return JobRef.model_validate(data)
    except ValidationError:
        return JobRef(title=str(raw.get("title") or ""))


def _flag(value: Any, default: bool) -> bool:
    return value if isinstance(value, bool) else default


def _clamp(value: Any, low: int, high: int | None) -> int | None:
    """Coerce to int and clamp into range; None when not a number."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = int(float(value))
    except (TypeError, ValueError):
        return None
    number = max(low, number)
    return min(high, number) if high is not None else number


def _parse_timestamp(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    try:
        return _timestamp.validate_python(value)
    except ValidationError:
        return None
