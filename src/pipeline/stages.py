"""Stage registry: the ordered set of pipeline columns.

Lock rules:
  - Locked stages are never deleted.
  - Renaming a locked stage, or locking or unlocking any stage, needs a
    privileged actor.
  - Moving a candidate into a locked stage needs a privileged actor.
Persisting the registry is the caller's concern.
"""

import logging
import time
from collections.abc import Iterable, Iterator

from src.core.errors import StageLockedError, UnknownStageError
from src.core.schemas import Stage

logger = logging.getLogger(__name__)

_MUTABLE_FIELDS = {"name", "color_tag", "is_locked", "description", "automation_hints"}

KANBAN_TEMPLATE: tuple[Stage, ...] = (
    Stage(id="new", name="New Applications", color_tag="blue", is_locked=True),
    Stage(id="reviewing", name="Under Review", color_tag="yellow"),
    Stage(id="phone_screening", name="Phone Screening", color_tag="orange"),
    Stage(id="technical_interview", name="Technical Interview", color_tag="purple"),
    Stage(id="final_interview", name="Final Interview", color_tag="indigo"),
    Stage(id="reference_check", name="Reference Check", color_tag="pink"),
    Stage(id="offer_extended", name="Offer Extended", color_tag="green"),
    Stage(id="offer_accepted", name="Offer Accepted", color_tag="emerald"),
    Stage(id="onboarding", name="Onboarding", color_tag="teal"),
    Stage(id="hired", name="Hired", color_tag="cyan", is_locked=True),
    Stage(id="rejected", name="Rejected", color_tag="red", is_locked=True),
)

WORKSPACE_TEMPLATE: tuple[Stage, ...] = (
    Stage(
        id="new_inbox",
        name="New Applications",
        color_tag="blue",
        is_locked=True,
        description="Newly received applications waiting for review",
        automation_hints=["Auto-tag new applications", "Send acknowledgment email"],
    ),
    Stage(
        id="reviewing",
        name="Under Review",
        color_tag="yellow",
        description="Applications being reviewed by the team",
    ),
    Stage(
        id="phone_screening",
        name="Phone Screening",
        color_tag="orange",
        description="Candidates scheduled for phone screening",
        automation_hints=["Auto-schedule reminder", "Send screening questions"],
    ),
    Stage(
        id="technical_interview",
        name="Technical Interview",
        color_tag="purple",
        description="Technical assessment stage",
        automation_hints=["Send technical test", "Schedule tech interview"],
    ),
    Stage(
        id="final_interview",
        name="Final Interview",
        color_tag="indigo",
        description="Final round with decision makers",
        automation_hints=["Schedule final interview", "Prepare offer package"],
    ),
    Stage(
        id="offer_extended",
        name="Offer Extended",
        color_tag="green",
        description="Offers sent and awaiting response",
        automation_hints=["Send offer letter", "Track response deadline"],
    ),
    Stage(
        id="hired",
        name="Hired",
        color_tag="emerald",
        is_locked=True,
        description="Successfully hired candidates",
        automation_hints=["Start onboarding process", "Create employee profile"],
    ),
    Stage(
        id="rejected",
        name="Rejected",
        color_tag="red",
        is_locked=True,
        description="Candidates not selected",
        automation_hints=["Send rejection email", "Archive application"],
    ),
)

TEMPLATES: dict[str, tuple[Stage, ...]] = {
    "kanban": KANBAN_TEMPLATE,
    "workspace": WORKSPACE_TEMPLATE,
}


class StageRegistry:
    """Ordered, id-unique sequence of stages.

    Usage::

        registry = StageRegistry.from_template("kanban")
        stage = registry.add_stage()
        registry.update_stage(stage.id, name="Take-home")
        registry.reorder_stages([...])
    """

    def __init__(self, stages: Iterable[Stage]) -> None:
        self._stages: list[Stage] = []
        for stage in stages:
            if stage.id in self:
                msg = f"Duplicate stage id '{stage.id}'"
                raise ValueError(msg)
            self._stages.append(stage)

    @classmethod
    def from_template(cls, name: str) -> "StageRegistry":
        if name not in TEMPLATES:
            valid = ", ".join(sorted(TEMPLATES))
            msg = f"Unknown stage template '{name}'. Available: {valid}"
            raise ValueError(msg)
        return cls(TEMPLATES[name])

    def __contains__(self, stage_id: object) -> bool:
        return any(s.id == stage_id for s in self._stages)

    def __iter__(self) -> Iterator[Stage]:
        return iter(list(self._stages))

    def __len__(self) -> int:
        return len(self._stages)

    @property
    def stages(self) -> list[Stage]:
        return list(self._stages)

    @property
    def ids(self) -> list[str]:
        return [s.id for s in self._stages]

    def get(self, stage_id: str) -> Stage:
        for stage in self._stages:
            if stage.id == stage_id:
                return stage
        msg = f"Unknown stage '{stage_id}'"
        raise UnknownStageError(stage_id, msg)

    def add_stage(self) -> Stage:
        """Append a new unlocked stage with a generated id and default metadata."""
        base = f"custom_{int(time.time() * 1000)}"
        stage_id = base
        suffix = 1
        while stage_id in self:
            stage_id = f"{base}_{suffix}"
            suffix += 1
        stage = Stage(
            id=stage_id,
            name="New Column",
            color_tag="gray",
            description="Custom workflow stage",
        )
        self._stages.append(stage)
        logger.debug("Added stage '%s'", stage_id)
        return stage

    def update_stage(self, stage_id: str, *, privileged: bool = False, **fields: object) -> Stage:
        """Merge ``fields`` into the stage. The id itself is immutable."""
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            msg = f"Cannot update stage fields: {sorted(unknown)}"
            raise ValueError(msg)

        current = self.get(stage_id)
        if not privileged:
            if "is_locked" in fields and fields["is_locked"] != current.is_locked:
                msg = f"Changing the lock on stage '{stage_id}' needs a privileged actor"
                raise StageLockedError(stage_id, msg)
            if current.is_locked and "name" in fields and fields["name"] != current.name:
                msg = f"Stage '{stage_id}' is locked and cannot be renamed"
                raise StageLockedError(stage_id, msg)

        updated = Stage.model_validate({**current.model_dump(), **fields})
        index = self.ids.index(stage_id)
        self._stages[index] = updated
        return updated

    def delete_stage(self, stage_id: str) -> None:
        """Remove an unlocked stage. Candidates are not migrated here."""
        stage = self.get(stage_id)
        if stage.is_locked:
            msg = f"Stage '{stage_id}' is locked and cannot be deleted"
            raise StageLockedError(stage_id, msg)
        self._stages = [s for s in self._stages if s.id != stage_id]
        logger.debug("Deleted stage '%s'", stage_id)

    def reorder_stages(self, new_order: list[str]) -> None:
        """Replace the ordering. ``new_order`` must hold exactly the current ids."""
        if sorted(new_order) != sorted(self.ids):
            msg = f"Stage order {new_order} does not match registry ids {self.ids}"
            raise ValueError(msg)
        by_id = {s.id: s for s in self._stages}
        self._stages = [by_id[i] for i in new_order]

    def move_stage(self, from_index: int, to_index: int) -> None:
        """Drag a column from one position to another."""
        order = self.ids
        if not (0 <= from_index < len(order) and 0 <= to_index < len(order)):
            msg = f"Stage index out of range: {from_index} -> {to_index}"
            raise IndexError(msg)
        order.insert(to_index, order.pop(from_index))
        self.reorder_stages(order)

    def check_entry(self, stage_id: str, *, privileged: bool) -> None:
        """Raise unless a candidate may be moved into ``stage_id``."""
        stage = self.get(stage_id)
        if stage.is_locked and not privileged:
            msg = f"Stage '{stage_id}' is locked; only privileged users can move candidates into it"
            raise StageLockedError(stage_id, msg)
