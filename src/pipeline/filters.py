"""Filter/query engine: derive the visible candidate set from a FilterState.

Predicate order (short-circuit conjunction, first failure excludes):
  1. SearchTermPredicate     - free text over name, email, job title, skills, tags
  2. JobPredicate            - job posting id
  3. StatusPredicate
  4. PriorityPredicate
  5. RatingFloorPredicate
  6. ResumePredicate         - with / without resume
  7. MatchScoreFloorPredicate
  8. DateRangePredicate      - applied_at, else created_at; inclusive
  9. TagsPredicate           - record must carry every filter tag
  10. RevealedContactPredicate
Inactive filters contribute no predicate, so an empty FilterState is the identity.
"""

import logging
from collections.abc import Callable, Iterable
from datetime import date

from src.core.schemas import CandidateRecord, DateRange, FilterState, Stage

logger = logging.getLogger(__name__)

# A predicate decides whether one record stays visible.
Predicate = Callable[[CandidateRecord], bool]


class SearchTermPredicate:
    """Case-insensitive substring match over the searchable text of a record."""

    def __init__(self, term: str) -> None:
        self._term = term.lower()

    def __call__(self, record: CandidateRecord) -> bool:
        applicant = record.applicant
        haystack = [
            applicant.display_name,
            applicant.email,
            record.job.title if record.job else "",
            *applicant.skills,
            *record.tags,
        ]
        return any(self._term in text.lower() for text in haystack if text)


class JobPredicate:
    def __init__(self, job_id: int) -> None:
        self._job_id = job_id

    def __call__(self, record: CandidateRecord) -> bool:
        return record.job is not None and record.job.id == self._job_id


class StatusPredicate:
    def __init__(self, status: str) -> None:
        self._status = status

    def __call__(self, record: CandidateRecord) -> bool:
        return record.status.lower() == self._status


class PriorityPredicate:
    def __init__(self, priority: str) -> None:
        self._priority = priority

    def __call__(self, record: CandidateRecord) -> bool:
        return record.priority == self._priority


class RatingFloorPredicate:
    def __init__(self, floor: int) -> None:
        self._floor = floor

    def __call__(self, record: CandidateRecord) -> bool:
        return record.rating >= self._floor


class ResumePredicate:
    def __init__(self, want_resume: bool) -> None:
        self._want = want_resume

    def __call__(self, record: CandidateRecord) -> bool:
        return record.has_resume is self._want


class MatchScoreFloorPredicate:
    """Records without a match score fail any floor."""

    def __init__(self, floor: int) -> None:
        self._floor = floor

    def __call__(self, record: CandidateRecord) -> bool:
        return record.job_match_score is not None and record.job_match_score >= self._floor


class DateRangePredicate:
    """Inclusive day range; an inverted range is read with its bounds swapped.

    Records with neither an applied nor a created timestamp are excluded.
    """

    def __init__(self, date_range: DateRange) -> None:
        start, end = date_range.start, date_range.end
        if start is not None and end is not None and start > end:
            start, end = end, start
        self._start: date | None = start
        self._end: date | None = end

    def __call__(self, record: CandidateRecord) -> bool:
        day = record.activity_date
        if day is None:
            return False
        if self._start is not None and day < self._start:
            return False
        return not (self._end is not None and day > self._end)


class TagsPredicate:
    """Superset check: every filter tag must be on the record."""

    def __init__(self, tags: Iterable[str]) -> None:
        self._tags = set(tags)

    def __call__(self, record: CandidateRecord) -> bool:
        return self._tags.issubset(record.tags)


class RevealedContactPredicate:
    def __call__(self, record: CandidateRecord) -> bool:
        return record.contact_visible is not False or record.contact_revealed


def build_predicates(state: FilterState) -> list[Predicate]:
    """Active predicates for ``state``, in evaluation order."""
    predicates: list[Predicate] = []
    if state.search:
        predicates.append(SearchTermPredicate(state.search))
    if state.job_id is not None:
        predicates.append(JobPredicate(state.job_id))
    if state.status:
        predicates.append(StatusPredicate(state.status))
    if state.priority:
        predicates.append(PriorityPredicate(state.priority))
    if state.rating:
        predicates.append(RatingFloorPredicate(state.rating))
    if state.has_resume != "any":
        predicates.append(ResumePredicate(state.has_resume == "with"))
    if state.job_match_min is not None:
        predicates.append(MatchScoreFloorPredicate(state.job_match_min))
    if state.date_range is not None and (state.date_range.start or state.date_range.end):
        predicates.append(DateRangePredicate(state.date_range))
    if state.tags:
        predicates.append(TagsPredicate(state.tags))
    if state.only_revealed_contacts:
        predicates.append(RevealedContactPredicate())
    return predicates


def compute_visible_set(
    records: Iterable[CandidateRecord],
    state: FilterState,
) -> list[CandidateRecord]:
    """Records passing every active filter, in input order. Pure."""
    records = list(records)
    predicates = build_predicates(state)
    if not predicates:
        return records
    visible = [r for r in records if all(p(r) for p in predicates)]
    logger.debug("Filters kept %d of %d records", len(visible), len(records))
    return visible


def group_by_stage(
    visible: Iterable[CandidateRecord],
    stages: Iterable[Stage],
) -> dict[str, list[CandidateRecord]]:
    """Partition records into stage columns, in stage order.

    Every stage gets a (possibly empty) column. Records whose stage is not
    a known column are dropped.
    """
    groups: dict[str, list[CandidateRecord]] = {s.id: [] for s in stages}
    orphaned = 0
    for record in visible:
        column = groups.get(record.stage)
        if column is None:
            orphaned += 1
            continue
        column.append(record)
    if orphaned:
        logger.debug("group_by_stage: dropped %d records with unknown stage", orphaned)
    return groups
