"""Transition controller: stage moves, bulk actions and contact reveal.

Single-card move:
  1. Drop no-op moves; reject unknown or (for non-privileged sessions) locked
     destinations. No network call in either case.
  2. Apply the move locally; entering the screening stage also clears
     ``flagged`` and ``is_new_lead``.
  3. Confirm with the service. Success merges the reply into the record,
     failure restores the touched fields exactly. Neither surfaces a notice:
     the card simply settles or snaps back.

Each move takes a per-record in-flight token. A reply that arrives after a
newer move of the same record neither rolls back nor reconciles over it.

Bulk actions go out as one batched request. Local records change only after
the service accepts the whole batch; a failure changes nothing locally and
surfaces a notice. The service's own partial-failure behavior is opaque here,
so a successful reply is taken to mean every listed id was updated.
"""

import itertools
import logging
from collections.abc import Callable, Iterable
from typing import Any, assert_never

from src.backend.base import PipelineBackend
from src.core.errors import BackendError, StageError
from src.core.schemas import Notice
from src.pipeline.actions import (
    BulkAction,
    MoveAction,
    NoteAction,
    PriorityAction,
    TagAction,
    parse_bulk_action,
)
from src.pipeline.stages import StageRegistry
from src.pipeline.store import CandidateStore, fields_from_dto, with_optimistic_update

logger = logging.getLogger(__name__)

NoticeSink = Callable[[Notice], None]


class BulkOutcome:
    """Result of one bulk action."""

    def __init__(
        self,
        ok: bool,
        updated_count: int = 0,
        notice: Notice | None = None,
    ) -> None:
        self.ok = ok
        self.updated_count = updated_count
        self.notice = notice


class TransitionController:
    """Executes every state change on the candidate store.

    Usage::

        controller = TransitionController(store, registry, backend, on_notice=show)
        await controller.move(42, "phone_screening")
        await controller.run_bulk([1, 2, 3], TagAction(tags=["python"]))
    """

    def __init__(
        self,
        store: CandidateStore,
        registry: StageRegistry,
        backend: PipelineBackend,
        *,
        screening_stage: str | None = "phone_screening",
        privileged: bool = True,
        on_notice: NoticeSink | None = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._backend = backend
        self._screening_stage = screening_stage
        self._privileged = privileged
        self._on_notice = on_notice
        self._inflight: dict[int, int] = {}
        self._tokens = itertools.count(1)

    def stage_changes(self, destination: str) -> dict[str, Any]:
        """Field changes for entering ``destination``."""
        changes: dict[str, Any] = {"stage": destination}
        if destination == self._screening_stage:
            changes["flagged"] = False
            changes["is_new_lead"] = False
        return changes

    def is_in_flight(self, record_id: int) -> bool:
        return record_id in self._inflight

    async def move(self, record_id: int, destination: str) -> bool:
        """Move one card. Returns True when the service confirmed the move."""
        record = self._store.get(record_id)
        if record is None:
            logger.warning("Move ignored: application %d is not loaded", record_id)
            return False
        if record.stage == destination:
            return False
        try:
            self._registry.check_entry(destination, privileged=self._privileged)
        except StageError as e:
            logger.warning("Move of application %d rejected: %s", record_id, e)
            return False

        token = next(self._tokens)
        self._inflight[record_id] = token

        def is_current() -> bool:
            return self._inflight.get(record_id) == token

        try:
            reply = await with_optimistic_update(
                self._store,
                record_id,
                self.stage_changes(destination),
                lambda: self._backend.update_application_stage(record_id, destination),
                is_current=is_current,
            )
        except BackendError as e:
            logger.warning(
                "Stage update for application %d to '%s' failed: %s", record_id, destination, e,
            )
            return False
        except Exception:
            logger.exception(
                "Stage update for application %d to '%s' failed unexpectedly", record_id, destination,
            )
            return False
        else:
            if is_current():
                self._reconcile(record_id, reply)
            else:
                logger.debug("Stale confirmation for application %d ignored", record_id)
            logger.info("Moved application %d to '%s'", record_id, destination)
            return True
        finally:
            self._release(record_id, token)

    async def run_bulk_named(
        self,
        record_ids: Iterable[int],
        kind: str,
        payload: dict[str, Any],
    ) -> BulkOutcome:
        """Run a bulk action given by its UI name; bad names never reach the network."""
        try:
            action = parse_bulk_action(kind, payload)
        except ValueError as e:
            logger.warning("Bulk action rejected: %s", e)
            return BulkOutcome(ok=False)
        return await self.run_bulk(record_ids, action)

    async def run_bulk(self, record_ids: Iterable[int], action: BulkAction) -> BulkOutcome:
        """Apply ``action`` to every id with one request, all-or-nothing locally."""
        ids = list(dict.fromkeys(record_ids))
        if not ids:
            logger.debug("Bulk %s skipped: no applications selected", action.kind)
            return BulkOutcome(ok=False)

        if isinstance(action, MoveAction):
            try:
                self._registry.check_entry(action.stage, privileged=self._privileged)
            except StageError as e:
                logger.warning("Bulk move rejected: %s", e)
                return BulkOutcome(ok=False)

        try:
            reply = await self._backend.bulk_application_action(
                ids, action.server_action, action.server_payload(),
            )
        except Exception as e:
            logger.error(
                "Bulk %s on %d applications failed: %s", action.kind, len(ids), e,
                exc_info=not isinstance(e, BackendError),
            )
            notice = Notice(title="Bulk action failed", message=_failure_message(e), level="error")
            self._notify(notice)
            return BulkOutcome(ok=False, notice=notice)

        changes = self._bulk_changes(action)
        applied = 0
        for record_id in ids:
            if record_id not in self._store:
                logger.debug("Bulk %s: application %d not loaded locally", action.kind, record_id)
                continue
            self._store.apply_local_mutation(record_id, changes)
            applied += 1

        updated = reply.get("updatedCount")
        updated_count = updated if isinstance(updated, int) else applied
        logger.info("Bulk %s applied to %d applications", action.kind, updated_count)
        return BulkOutcome(ok=True, updated_count=updated_count)

    async def reveal_contact(self, record_id: int) -> dict[str, Any] | None:
        """Reveal contact details; returns them, or None after surfacing a notice."""
        if record_id not in self._store:
            logger.warning("Contact reveal ignored: application %d is not loaded", record_id)
            return None
        try:
            reply = await self._backend.reveal_contact(record_id)
        except Exception as e:
            logger.warning(
                "Contact reveal for application %d failed: %s", record_id, e,
                exc_info=not isinstance(e, BackendError),
            )
            self._notify(
                Notice(title="Could not reveal contact", message=_failure_message(e), level="error"),
            )
            return None

        self._store.apply_local_mutation(
            record_id, {"contact_visible": True, "contact_revealed": True},
        )
        if reply.get("alreadyRevealed"):
            logger.debug("Contact for application %d was already revealed", record_id)
        elif "creditsRemaining" in reply:
            logger.info("Contact revealed, %s credits remaining", reply["creditsRemaining"])
        contact = reply.get("contactInfo")
        return contact if isinstance(contact, dict) else {}

    def _bulk_changes(self, action: BulkAction) -> dict[str, Any]:
        match action:
            case MoveAction(stage=stage):
                return self.stage_changes(stage)
            case NoteAction(note=note):
                return {"notes": note}
            case PriorityAction(priority=priority):
                return {"priority": priority}
            case TagAction(tags=tags):
                return {"tags": list(tags)}
            case _:
                assert_never(action)

    def _reconcile(self, record_id: int, reply: dict[str, Any]) -> None:
        application = reply.get("application", reply)
        if not isinstance(application, dict):
            return
        fields = fields_from_dto(application)
        if not fields:
            return

        record = self._store.get(record_id)
        if record is None:
            return
        server_version = fields.get("version")
        if (
            record.version is not None
            and isinstance(server_version, int)
            and server_version < record.version
        ):
            logger.warning(
                "Ignoring stale reply for application %d (version %d < %d)",
                record_id, server_version, record.version,
            )
            return
        self._store.reconcile(record_id, fields)

    def _release(self, record_id: int, token: int) -> None:
        if self._inflight.get(record_id) == token:
            del self._inflight[record_id]

    def _notify(self, notice: Notice) -> None:
        if self._on_notice is not None:
            self._on_notice(notice)


def _failure_message(error: Exception) -> str:
    if isinstance(error, BackendError):
        return error.message
    return str(error) or type(error).__name__
