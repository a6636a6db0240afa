"""WorkspaceSession: the state of one open pipeline view.

One session per workspace view owns the stage registry, the candidate store,
the filter state, the selection and the single pending-action slot, and wires
them to the transition controller and export adapter. Subcomponents receive
the session's parts explicitly; nothing is shared through module globals.
"""

import logging
from collections.abc import Iterable
from typing import Any

from src.backend.base import PipelineBackend
from src.core.config import Settings
from src.core.errors import BackendError, StageNotEmptyError
from src.core.schemas import ActionKind, CandidateRecord, FilterState, Notice, PendingAction, Stage
from src.export.exporter import ExportAdapter, ExportOutcome
from src.pipeline.analytics import StageStats, WorkspaceAnalytics, stage_stats, workspace_analytics
from src.pipeline.filters import compute_visible_set, group_by_stage
from src.pipeline.selection import SelectionSet
from src.pipeline.stages import StageRegistry
from src.pipeline.store import CandidateStore
from src.pipeline.transitions import BulkOutcome, TransitionController

logger = logging.getLogger(__name__)


class WorkspaceSession:
    """Explicit context object for one workspace view.

    Usage::

        session = WorkspaceSession(backend, settings)
        await session.reload()
        session.update_filters(tags=["python"], rating=3)
        for stage_id, records in session.groups.items():
            ...
        await session.move(42, "phone_screening")
    """

    def __init__(
        self,
        backend: PipelineBackend,
        settings: Settings | None = None,
        registry: StageRegistry | None = None,
    ) -> None:
        self._settings = settings or Settings()
        workspace = self._settings.workspace
        if registry is None:
            registry = (
                StageRegistry(workspace.stages)
                if workspace.stages
                else StageRegistry.from_template(workspace.stage_template)
            )
        self.registry = registry
        self.store = CandidateStore(backend, new_stage=workspace.new_stage or registry.ids[0])
        self.selection = SelectionSet()
        self.controller = TransitionController(
            self.store,
            self.registry,
            backend,
            screening_stage=workspace.screening_stage,
            privileged=workspace.privileged,
            on_notice=self.show_notice,
        )
        self.exporter = ExportAdapter(
            backend, self._settings.export.output_dir, on_notice=self.show_notice,
        )
        self._filters = FilterState()
        self._pending: PendingAction | None = None

    @property
    def name(self) -> str:
        return self._settings.workspace.name

    @property
    def privileged(self) -> bool:
        return self._settings.workspace.privileged

    @property
    def filters(self) -> FilterState:
        return self._filters

    @property
    def pending(self) -> PendingAction | None:
        return self._pending

    @property
    def is_exporting(self) -> bool:
        return self.exporter.is_exporting

    # ------------------------------------------------------------------
    # Loading and filtering
    # ------------------------------------------------------------------

    async def reload(self) -> bool:
        """Refetch applications; on failure keep the cache and show a notice."""
        params = {**self._filters.server_params(), "limit": str(self._settings.workspace.page_size)}
        try:
            await self.store.load(params)
        except BackendError as e:
            logger.error("Loading applications failed: %s", e)
            self.show_notice(
                Notice(title="Could not load applications", message=e.message, level="error"),
            )
            return False
        finally:
            self._prune()
        return True

    def set_filters(self, state: FilterState) -> None:
        self._filters = state
        self._prune()

    def update_filters(self, **changes: Any) -> FilterState:
        """Merge filter changes; malformed values are dropped, not raised."""
        state = FilterState.from_mapping({**self._filters.model_dump(), **changes})
        self.set_filters(state)
        return state

    def clear_filters(self) -> None:
        self.set_filters(FilterState())

    @property
    def visible(self) -> list[CandidateRecord]:
        return compute_visible_set(self.store.all(), self._filters)

    @property
    def groups(self) -> dict[str, list[CandidateRecord]]:
        return group_by_stage(self.visible, self.registry)

    def column_stats(self) -> dict[str, StageStats]:
        return {stage_id: stage_stats(records) for stage_id, records in self.groups.items()}

    def analytics(self) -> WorkspaceAnalytics:
        return workspace_analytics(self.store.all(), self.registry.stages)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def toggle_select(self, record_id: int, checked: bool) -> None:
        if checked and record_id not in {r.id for r in self.visible}:
            logger.debug("Selection of hidden application %d ignored", record_id)
            return
        self.selection.toggle_select(record_id, checked)

    def toggle_select_all_in_group(self, stage_id: str) -> None:
        self.selection.toggle_select_all_in_group(stage_id, self.groups)

    def clear_selection(self) -> None:
        self.selection.clear()

    def _prune(self) -> None:
        self.selection.prune(self.visible)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def move(self, record_id: int, destination: str) -> bool:
        moved = await self.controller.move(record_id, destination)
        self._prune()
        return moved

    async def run_bulk(
        self,
        kind: str,
        payload: dict[str, Any],
        record_ids: Iterable[int] | None = None,
    ) -> BulkOutcome:
        """Run a bulk action on ``record_ids`` (default: the current selection)."""
        ids = list(record_ids) if record_ids is not None else self.selection.ids
        outcome = await self.controller.run_bulk_named(ids, kind, payload)
        self._prune()
        return outcome

    async def export(
        self,
        fmt: str | None = None,
        record_ids: Iterable[int] | None = None,
    ) -> ExportOutcome:
        ids = list(record_ids) if record_ids is not None else self.selection.ids
        return await self.exporter.export_selection(ids, fmt or self._settings.export.default_format)

    async def reveal_contact(self, record_id: int) -> dict[str, Any] | None:
        contact = await self.controller.reveal_contact(record_id)
        self._prune()
        return contact

    # ------------------------------------------------------------------
    # Pending action slot
    # ------------------------------------------------------------------

    def begin_action(
        self,
        kind: ActionKind,
        target_ids: Iterable[int] | None = None,
        payload: dict[str, Any] | None = None,
    ) -> PendingAction:
        """Open a modal-pending action; replaces whatever was pending."""
        targets = list(target_ids) if target_ids is not None else self.selection.ids
        self._pending = PendingAction(kind=kind, target_ids=targets, payload=payload or {})
        return self._pending

    async def submit_action(self, payload: dict[str, Any] | None = None) -> bool:
        """Execute the pending action with ``payload`` merged over its own."""
        pending = self._pending
        if pending is None:
            logger.warning("submit_action called with nothing pending")
            return False

        merged = {**pending.payload, **(payload or {})}
        match pending.kind:
            case "move" | "note" | "priority" | "tag":
                ok = (await self.run_bulk(pending.kind, merged, pending.target_ids)).ok
            case "export":
                outcome = await self.export(merged.get("format"), pending.target_ids)
                ok = outcome.ok
            case "share" | "notice":
                ok = True

        if self._pending is pending:
            self._pending = None
        return ok

    def cancel_action(self) -> None:
        self._pending = None

    def show_notice(self, notice: Notice) -> None:
        self._pending = PendingAction(kind="notice", notice=notice)

    # ------------------------------------------------------------------
    # Stage management
    # ------------------------------------------------------------------

    def add_stage(self) -> Stage:
        return self.registry.add_stage()

    def update_stage(self, stage_id: str, **fields: Any) -> Stage:
        return self.registry.update_stage(stage_id, privileged=self.privileged, **fields)

    def delete_stage(self, stage_id: str) -> None:
        """Delete an unlocked stage; refused while any loaded candidate is in it."""
        occupants = sum(1 for r in self.store.all() if r.stage == stage_id)
        if occupants:
            msg = f"Stage '{stage_id}' still holds {occupants} candidate(s)"
            raise StageNotEmptyError(stage_id, msg)
        self.registry.delete_stage(stage_id)

    def reorder_stages(self, new_order: list[str]) -> None:
        self.registry.reorder_stages(new_order)

    def move_stage(self, from_index: int, to_index: int) -> None:
        self.registry.move_stage(from_index, to_index)
