"""Column counters and workspace-level conversion figures."""

from collections.abc import Iterable, Sequence

from pydantic import BaseModel, ConfigDict

from src.core.schemas import CandidateRecord, Stage

INTERVIEW_STAGES = ("technical_interview", "final_interview")
HIRED_STAGE = "hired"


class StageStats(BaseModel):
    """Badge counters shown in a column header."""

    model_config = ConfigDict(frozen=True)

    total: int = 0
    new: int = 0
    urgent: int = 0
    overdue: int = 0


class StageShare(BaseModel):
    model_config = ConfigDict(frozen=True)

    stage_id: str
    name: str
    count: int
    percentage: int


class WorkspaceAnalytics(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int
    review_rate: int
    interview_rate: int
    hire_rate: int
    distribution: list[StageShare]


def stage_stats(records: Iterable[CandidateRecord]) -> StageStats:
    records = list(records)
    return StageStats(
        total=len(records),
        new=sum(1 for r in records if r.is_new_lead),
        urgent=sum(1 for r in records if r.priority == "urgent"),
        overdue=sum(1 for r in records if r.is_overdue),
    )


def workspace_analytics(
    records: Iterable[CandidateRecord],
    stages: Sequence[Stage],
) -> WorkspaceAnalytics:
    """Review/interview/hire rates and per-stage distribution, as whole percentages.

    "Reviewed" means the record has left the first stage.
    """
    records = list(records)
    total = len(records)
    first_stage = stages[0].id if stages else None

    reviewed = sum(1 for r in records if r.stage != first_stage)
    interviewed = sum(1 for r in records if r.stage in INTERVIEW_STAGES)
    hired = sum(1 for r in records if r.stage == HIRED_STAGE)

    distribution = []
    for stage in stages:
        count = sum(1 for r in records if r.stage == stage.id)
        distribution.append(
            StageShare(
                stage_id=stage.id,
                name=stage.name,
                count=count,
                percentage=_percent(count, total),
            )
        )

    return WorkspaceAnalytics(
        total=total,
        review_rate=_percent(reviewed, total),
        interview_rate=_percent(interviewed, total),
        hire_rate=_percent(hired, total),
        distribution=distribution,
    )


def _percent(part: int, total: int) -> int:
    """Whole percentage, halves rounded up; 0 for an empty workspace."""
    if total <= 0:
        return 0
    return int(part * 100 / total + 0.5)
