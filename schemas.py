"""Pydantic schemas for subject records, risk outputs and API payloads."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal

from pydantic import BaseModel, Field, computed_field, field_validator

__all__ = [
    "SNAPSHOT_POSITIONS",
    "SOURCE_ROLES",
    "SourceRole",
    "RiskLevel",
    "Urgency",
    "TopicScore",
    "GradeEntry",
    "Recommendation",
    "CompletionFlags",
    "SubjectRecord",
    "RiskResult",
    "SubjectUpdateBatch",
    "utcnow",
]

SNAPSHOT_POSITIONS: tuple[str, ...] = ("unit_test_1", "unit_test_2", "mid_sem", "end_sem")
"""Assessment checkpoints in chronological order."""

SOURCE_ROLES: tuple[str, ...] = ("academic", "attendance", "financial")

SourceRole = Literal["academic", "attendance", "financial"]
RiskLevel = Literal["pending", "low", "medium", "high"]
Urgency = Literal["immediate", "high", "medium", "low"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TopicScore(BaseModel):
    topic: str = Field(min_length=1, description="Subject or course the score belongs to.")
    score: float = Field(ge=0.0, le=100.0, description="Percentage score for the topic.")


class GradeEntry(BaseModel):
    """Flattened per-topic grade judged against the pass mark."""

    topic: str
    score: float
    passed: bool


class Recommendation(BaseModel):
    action: str = Field(description="Suggested follow-up action.")
    urgency: Urgency = Field(description="How soon the action should happen.")
    completed: bool = False
    notes: str = ""


class CompletionFlags(BaseModel):
    """Which source roles have reported data for a subject."""

    academic: bool = False
    attendance: bool = False
    financial: bool = False
    updated_at: Dict[str, datetime] = Field(
        default_factory=dict,
        description="Last time each role's flag changed, keyed by role.",
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def complete(self) -> bool:
        return self.academic and self.attendance and self.financial

    def missing(self) -> list[str]:
        """Return the roles that have not reported yet, in canonical order."""

        return [role for role in SOURCE_ROLES if not getattr(self, role)]


class SubjectRecord(BaseModel):
    subject_id: str = Field(min_length=1, description="Stable identity key of the tracked student.")
    name: str | None = None

    attendance_rate: float = Field(default=0.0, ge=0.0, le=100.0)

    payment_state: str = Field(
        default="current",
        description="Fee state; normally one of current, pending or overdue.",
    )
    overdue_days: int = Field(default=0, ge=0)
    amount_paid: float = Field(default=0.0, ge=0.0)
    amount_due: float = Field(default=0.0, ge=0.0)
    due_date: str | None = None

    snapshots: Dict[str, List[TopicScore]] = Field(
        default_factory=dict,
        description="Scores per assessment checkpoint, keyed by snapshot position.",
    )
    legacy_grades: List[TopicScore] = Field(
        default_factory=list,
        description="Single grade list used when no snapshot carries data.",
    )

    completion: CompletionFlags = Field(default_factory=CompletionFlags)

    risk_level: RiskLevel = "pending"
    risk_score: int = Field(default=0, ge=0, le=100)
    risk_factors: List[str] = Field(default_factory=list)
    explanation: List[str] = Field(default_factory=list)
    recommendations: List[Recommendation] = Field(default_factory=list)
    risk_provisional: bool = Field(
        default=False,
        description="True when the stored risk was forced on incomplete data.",
    )
    risk_computed_at: datetime | None = None

    last_updated: datetime = Field(default_factory=utcnow)

    @field_validator("snapshots")
    @classmethod
    def _known_positions(cls, value: Dict[str, List[TopicScore]]) -> Dict[str, List[TopicScore]]:
        unknown = sorted(set(value) - set(SNAPSHOT_POSITIONS))
        if unknown:
            raise ValueError(f"Unknown snapshot positions: {', '.join(unknown)}")
        return value

    @property
    def complete(self) -> bool:
        return self.completion.complete


class RiskResult(BaseModel):
    level: Literal["low", "medium", "high"]
    score: int = Field(ge=0, le=100)
    factors: List[str] = Field(default_factory=list)
    explanations: List[str] = Field(default_factory=list)
    recommendations: List[Recommendation] = Field(default_factory=list)


class SubjectUpdateBatch(BaseModel):
    """Request body for ingesting partial updates from one source role."""

    role: str = Field(description="Source role or organisational alias that supplied the rows.")
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    force: bool = Field(
        default=False,
        description="Compute risk even when other sources have not reported yet.",
    )
