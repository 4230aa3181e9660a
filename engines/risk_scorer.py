"""Transparent rule-based risk scorer.

Every rule adds a non-negative amount to a running total, a factor tag, an
explanation and a recommended action. Rules are evaluated in a fixed order:
attendance, failing subjects, grade progression, fees. The total is clamped
to 100 and mapped onto a level (>=60 high, >=30 medium, else low).

Configuration is resolved on every call so that threshold changes apply to
the very next computation; a missing or broken configuration falls back to
the defaults instead of failing.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from schemas import Recommendation, RiskResult, SubjectRecord, utcnow
from risk_config import ConfigSource, resolve_thresholds
from engines.grades import flatten_grades
from engines.progression import DEFAULT_ANALYZER, ProgressionAnalyzer

logger = logging.getLogger(__name__)

HIGH_RISK_SCORE = 60
MEDIUM_RISK_SCORE = 30
MAX_SCORE = 100


def level_for_score(score: float) -> str:
    if score >= HIGH_RISK_SCORE:
        return "high"
    if score >= MEDIUM_RISK_SCORE:
        return "medium"
    return "low"


class RiskScorer:
    def __init__(self, analyzer: Optional[ProgressionAnalyzer] = None) -> None:
        self.analyzer = analyzer or DEFAULT_ANALYZER

    def score(self, record: SubjectRecord, config: ConfigSource = None) -> RiskResult:
        """Score ``record`` against the thresholds resolved from ``config``."""

        thresholds = resolve_thresholds(config)
        total = 0
        factors: List[str] = []
        explanations: List[str] = []
        recs: List[Recommendation] = []

        def add(points: int, factor: str, explanation: str, action: str, urgency: str) -> None:
            nonlocal total
            total += points
            factors.append(factor)
            explanations.append(explanation)
            recs.append(Recommendation(action=action, urgency=urgency))

        # Attendance
        rate = record.attendance_rate
        if rate < thresholds.attendance_critical:
            add(
                40,
                "critical_attendance",
                f"Attendance {rate:g}% below {thresholds.attendance_critical:g}%",
                "Schedule attendance meeting",
                "immediate",
            )
        elif rate < thresholds.attendance_warning:
            add(
                20,
                "low_attendance",
                f"Attendance {rate:g}% below {thresholds.attendance_warning:g}%",
                "Monitor attendance",
                "high",
            )

        # Failing subjects
        grades = flatten_grades(record, thresholds.pass_mark)
        failing = sum(1 for grade in grades if grade.score < thresholds.pass_mark)
        if failing >= thresholds.failing_high:
            add(35, "multiple_failures", f"Failing {failing} subjects", "Create academic plan", "immediate")
        elif failing >= thresholds.failing_medium:
            add(15, "single_failure", f"Failing {failing} subject", "Provide tutoring", "high")
        elif failing > 0:
            add(
                5,
                "minor_failures",
                f"Failing {failing} subject(s) below pass mark {thresholds.pass_mark:g}",
                "Monitor performance",
                "medium",
            )

        # Grade progression
        progression = self.analyzer.analyze(record, thresholds.pass_mark)
        total += progression.score
        factors.extend(progression.factors)
        explanations.extend(progression.explanations)
        recs.extend(progression.recommendations)

        # Fees
        state = (record.payment_state or "").strip().lower()
        if state == "overdue" and record.overdue_days >= thresholds.overdue_days_high:
            add(
                25,
                "financial_stress",
                f"Fees overdue {record.overdue_days} days",
                "Financial counseling",
                "immediate",
            )
        elif state in {"pending", "due"}:
            add(10, "pending_fees", "Fees pending", "Send fee reminder", "medium")

        result = RiskResult(
            level=level_for_score(total),
            score=min(total, MAX_SCORE),
            factors=factors,
            explanations=explanations,
            recommendations=recs,
        )
        logger.debug("Scored %s: %s (%d)", record.subject_id, result.level, result.score)
        return result


DEFAULT_SCORER = RiskScorer()


def score(record: SubjectRecord, config: ConfigSource = None) -> RiskResult:
    """Score ``record`` with the default scorer."""

    return DEFAULT_SCORER.score(record, config)


def apply_risk(
    record: SubjectRecord,
    result: RiskResult,
    *,
    provisional: bool = False,
    now: Optional[datetime] = None,
) -> SubjectRecord:
    """Return a copy of ``record`` carrying ``result`` as its risk outputs."""

    stamp = now or utcnow()
    return record.model_copy(
        deep=True,
        update={
            "risk_level": result.level,
            "risk_score": result.score,
            "risk_factors": list(result.factors),
            "explanation": list(result.explanations),
            "recommendations": [rec.model_copy() for rec in result.recommendations],
            "risk_provisional": provisional,
            "risk_computed_at": stamp,
            "last_updated": stamp,
        },
    )
