"""Tests for the filter predicates, the visible-set query and stage grouping."""

from datetime import date, datetime

from src.core.schemas import Applicant, CandidateRecord, DateRange, FilterState, JobRef, Stage
from src.pipeline.filters import (
    DateRangePredicate,
    RevealedContactPredicate,
    SearchTermPredicate,
    TagsPredicate,
    build_predicates,
    compute_visible_set,
    group_by_stage,
)


def _record(
    *,
    id: int = 1,
    stage: str = "new",
    name: str = "Ada Lovelace",
    email: str = "ada@example.com",
    job_id: int | None = 3,
    job_title: str = "Backend Engineer",
    status: str = "pending",
    priority: str = "normal",
    rating: int = 0,
    tags: list[str] | None = None,
    skills: list[str] | None = None,
    resume_url: str | None = None,
    job_match_score: int | None = None,
    applied_at: datetime | None = None,
    created_at: datetime | None = None,
    contact_visible: bool | None = None,
    contact_revealed: bool = False,
) -> CandidateRecord:
    return CandidateRecord(
        id=id,
        stage=stage,
        status=status,
        priority=priority,
        rating=rating,
        tags=tags or [],
        applicant=Applicant(full_name=name, email=email, skills=skills or []),
        job=JobRef(id=job_id, title=job_title) if job_id is not None else None,
        resume_url=resume_url,
        job_match_score=job_match_score,
        applied_at=applied_at,
        created_at=created_at,
        contact_visible=contact_visible,
        contact_revealed=contact_revealed,
    )


# ---------------------------------------------------------------------------
# Individual predicates
# ---------------------------------------------------------------------------


class TestSearchTermPredicate:
    def test_matches_name_case_insensitive(self) -> None:
        assert SearchTermPredicate("lovelace")(_record())

    def test_matches_email_job_skills_tags(self) -> None:
        r = _record(skills=["Rust"], tags=["referral"])
        for term in ("example.com", "backend", "rust", "REFERRAL"):
            assert SearchTermPredicate(term)(r), term

    def test_no_match(self) -> None:
        assert not SearchTermPredicate("babbage")(_record())


class TestDateRangePredicate:
    def test_inclusive_bounds(self) -> None:
        p = DateRangePredicate(DateRange(start=date(2024, 3, 1), end=date(2024, 3, 31)))
        assert p(_record(applied_at=datetime(2024, 3, 1, 0, 0)))
        assert p(_record(applied_at=datetime(2024, 3, 31, 23, 59)))
        assert not p(_record(applied_at=datetime(2024, 4, 1)))
        assert not p(_record(applied_at=datetime(2024, 2, 29)))

    def test_inverted_range_swapped(self) -> None:
        p = DateRangePredicate(DateRange(start=date(2024, 3, 31), end=date(2024, 3, 1)))
        assert p(_record(applied_at=datetime(2024, 3, 15)))

    def test_open_ended(self) -> None:
        p = DateRangePredicate(DateRange(start=date(2024, 3, 1)))
        assert p(_record(applied_at=datetime(2030, 1, 1)))
        assert not p(_record(applied_at=datetime(2024, 2, 1)))

    def test_created_at_fallback(self) -> None:
        p = DateRangePredicate(DateRange(start=date(2024, 3, 1), end=date(2024, 3, 31)))
        assert p(_record(created_at=datetime(2024, 3, 10)))

    def test_undated_record_excluded(self) -> None:
        p = DateRangePredicate(DateRange(start=date(2024, 3, 1)))
        assert not p(_record())


class TestTagsPredicate:
    def test_superset_required(self) -> None:
        p = TagsPredicate(["python", "remote"])
        assert p(_record(tags=["python", "remote", "senior"]))
        assert not p(_record(tags=["python"]))


class TestRevealedContactPredicate:
    def test_hidden_contact_excluded(self) -> None:
        p = RevealedContactPredicate()
        assert not p(_record(contact_visible=False))

    def test_unknown_visibility_passes(self) -> None:
        assert RevealedContactPredicate()(_record(contact_visible=None))

    def test_revealed_passes(self) -> None:
        assert RevealedContactPredicate()(_record(contact_visible=False, contact_revealed=True))


class TestBuildPredicates:
    def test_empty_state_has_no_predicates(self) -> None:
        assert build_predicates(FilterState()) == []

    def test_zero_rating_is_inactive(self) -> None:
        assert build_predicates(FilterState(rating=0)) == []

    def test_empty_date_range_is_inactive(self) -> None:
        assert build_predicates(FilterState(date_range=DateRange())) == []


# ---------------------------------------------------------------------------
# compute_visible_set
# ---------------------------------------------------------------------------


class TestComputeVisibleSet:
    def _records(self) -> list[CandidateRecord]:
        return [
            _record(id=1, rating=5, priority="urgent", tags=["python"], resume_url="https://cv/1",
                    job_match_score=90, applied_at=datetime(2024, 3, 2)),
            _record(id=2, name="Charles Babbage", rating=2, status="reviewed", job_id=4,
                    tags=["go"], applied_at=datetime(2024, 5, 1)),
            _record(id=3, name="Grace Hopper", rating=4, job_match_score=40, tags=["python", "cobol"],
                    contact_visible=False),
        ]

    def test_empty_filters_are_identity(self) -> None:
        records = self._records()
        assert compute_visible_set(records, FilterState()) == records

    def test_each_filter(self) -> None:
        records = self._records()

        def ids(**kwargs: object) -> list[int]:
            return [r.id for r in compute_visible_set(records, FilterState(**kwargs))]

        assert ids(search="grace") == [3]
        assert ids(job_id=4) == [2]
        assert ids(status="reviewed") == [2]
        assert ids(priority="urgent") == [1]
        assert ids(rating=4) == [1, 3]
        assert ids(has_resume="with") == [1]
        assert ids(has_resume="without") == [2, 3]
        assert ids(job_match_min=50) == [1]
        assert ids(date_range=DateRange(start=date(2024, 3, 1), end=date(2024, 3, 31))) == [1]
        assert ids(tags=["python"]) == [1, 3]
        assert ids(only_revealed_contacts=True) == [1, 2]

    def test_filters_combine_as_conjunction(self) -> None:
        records = self._records()
        state = FilterState(tags=["python"], rating=4, job_match_min=50)
        assert [r.id for r in compute_visible_set(records, state)] == [1]

    def test_monotonic_when_adding_a_filter(self) -> None:
        records = self._records()
        loose = compute_visible_set(records, FilterState(tags=["python"]))
        tight = compute_visible_set(records, FilterState(tags=["python"], search="ada"))
        assert {r.id for r in tight} <= {r.id for r in loose}

    def test_pure(self) -> None:
        records = self._records()
        snapshot = list(records)
        compute_visible_set(records, FilterState(search="ada"))
        assert records == snapshot


# ---------------------------------------------------------------------------
# group_by_stage
# ---------------------------------------------------------------------------


class TestGroupByStage:
    def _stages(self) -> list[Stage]:
        return [Stage(id="new", name="New"), Stage(id="screen", name="Screen"), Stage(id="offer", name="Offer")]

    def test_every_stage_present_in_order(self) -> None:
        groups = group_by_stage([], self._stages())
        assert list(groups) == ["new", "screen", "offer"]
        assert all(column == [] for column in groups.values())

    def test_partition(self) -> None:
        records = [_record(id=1, stage="offer"), _record(id=2, stage="new"), _record(id=3, stage="offer")]
        groups = group_by_stage(records, self._stages())
        assert [r.id for r in groups["offer"]] == [1, 3]
        assert [r.id for r in groups["new"]] == [2]
        assert sum(len(c) for c in groups.values()) == len(records)

    def test_unknown_stage_dropped(self) -> None:
        groups = group_by_stage([_record(stage="archived")], self._stages())
        assert sum(len(c) for c in groups.values()) == 0
