"""Multi-select state for bulk actions.

After every ``prune`` the selection is a subset of the visible ids, so a bulk
action never targets a record the user can no longer see.
"""

import logging
from collections.abc import Iterable, Mapping

from src.core.schemas import CandidateRecord

logger = logging.getLogger(__name__)


class SelectionSet:
    """Selected candidate ids for one workspace view."""

    def __init__(self) -> None:
        self._ids: set[int] = set()

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    @property
    def ids(self) -> list[int]:
        return sorted(self._ids)

    def toggle_select(self, record_id: int, checked: bool) -> None:
        if checked:
            self._ids.add(record_id)
        else:
            self._ids.discard(record_id)

    def toggle_select_all_in_group(
        self,
        stage_id: str,
        groups: Mapping[str, list[CandidateRecord]],
    ) -> None:
        """Select the whole column, or deselect it when it is already fully selected."""
        group_ids = {r.id for r in groups.get(stage_id, [])}
        if not group_ids:
            return
        if group_ids <= self._ids:
            self._ids -= group_ids
        else:
            self._ids |= group_ids

    def prune(self, visible: Iterable[CandidateRecord]) -> None:
        visible_ids = {r.id for r in visible}
        stale = self._ids - visible_ids
        if stale:
            logger.debug("Pruned %d stale selections", len(stale))
            self._ids -= stale

    def clear(self) -> None:
        self._ids.clear()
