"""Bulk actions as a tagged union.

Each action knows the server verb it maps to and the payload shape the bulk
endpoint expects:

  move     -> move_stage    {"stage": ...}
  note     -> add_note      {"note": ...}
  priority -> set_priority  {"priority": ...}
  tag      -> tag           {"tags": [...]}
"""

from typing import Annotated, Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from src.core.errors import UnsupportedActionError
from src.core.schemas import ALLOWED_PRIORITIES


class _BulkAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    server_action: ClassVar[str]


class MoveAction(_BulkAction):
    server_action: ClassVar[str] = "move_stage"

    kind: Literal["move"] = "move"
    stage: str

    @field_validator("stage")
    @classmethod
    def stage_not_empty(cls, v: str) -> str:
        if not v.strip():
            msg = "stage must not be empty"
            raise ValueError(msg)
        return v.strip()

    def server_payload(self) -> dict[str, Any]:
        return {"stage": self.stage}


class NoteAction(_BulkAction):
    server_action: ClassVar[str] = "add_note"

    kind: Literal["note"] = "note"
    note: str

    @field_validator("note")
    @classmethod
    def note_not_empty(cls, v: str) -> str:
        if not v.strip():
            msg = "note must not be empty"
            raise ValueError(msg)
        return v

    def server_payload(self) -> dict[str, Any]:
        return {"note": self.note}


class PriorityAction(_BulkAction):
    server_action: ClassVar[str] = "set_priority"

    kind: Literal["priority"] = "priority"
    priority: str

    @field_validator("priority")
    @classmethod
    def priority_in_allowed(cls, v: str) -> str:
        v = v.lower().strip()
        if v not in ALLOWED_PRIORITIES:
            msg = f"priority must be one of {list(ALLOWED_PRIORITIES)}, got '{v}'"
            raise ValueError(msg)
        return v

    def server_payload(self) -> dict[str, Any]:
        return {"priority": self.priority}


class TagAction(_BulkAction):
    """Replaces the whole tag list; an empty list clears every tag."""

    server_action: ClassVar[str] = "tag"

    kind: Literal["tag"] = "tag"
    tags: list[str]

    @field_validator("tags")
    @classmethod
    def tags_unique(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(t.strip() for t in v if t.strip()))

    def server_payload(self) -> dict[str, Any]:
        return {"tags": list(self.tags)}


BulkAction = Annotated[
    MoveAction | NoteAction | PriorityAction | TagAction,
    Field(discriminator="kind"),
]

_bulk_action = TypeAdapter(BulkAction)

BULK_KINDS = ("move", "note", "priority", "tag")


def parse_bulk_action(kind: str, payload: dict[str, Any]) -> BulkAction:
    """Build a typed action from a UI action name and its payload.

    Raises:
        UnsupportedActionError: ``kind`` has no bulk handler.
        ValueError: the payload does not fit the action.
    """
    if kind not in BULK_KINDS:
        msg = f"Unsupported bulk action '{kind}'. Supported: {', '.join(BULK_KINDS)}"
        raise UnsupportedActionError(msg)
    try:
        return _bulk_action.validate_python({**payload, "kind": kind})
    except ValidationError as e:
        msg = f"Invalid payload for bulk action '{kind}': {e.error_count()} error(s)"
        raise ValueError(msg) from e
