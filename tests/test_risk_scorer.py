"""Tests for the rule-based risk scorer."""

import logging

import pytest

from engines.risk_scorer import RiskScorer, apply_risk, level_for_score, score
from schemas import SubjectRecord, TopicScore


def make_record(**overrides) -> SubjectRecord:
    data = {"subject_id": "S1", "attendance_rate": 95.0, "payment_state": "current"}
    legacy = overrides.pop("legacy", None)
    snapshots = overrides.pop("snapshots", None)
    data.update(overrides)
    record = SubjectRecord(**data)
    if legacy is not None:
        record.legacy_grades = [TopicScore(topic=t, score=s) for t, s in legacy.items()]
    if snapshots is not None:
        record.snapshots = {
            position: [TopicScore(topic=t, score=s) for t, s in scores.items()]
            for position, scores in snapshots.items()
        }
    return record


def test_attendance_in_warning_band():
    result = score(make_record(attendance_rate=80))

    assert result.score == 20
    assert result.level == "low"
    assert result.factors == ["low_attendance"]
    assert result.explanations == ["Attendance 80% below 85%"]
    assert [(r.action, r.urgency) for r in result.recommendations] == [("Monitor attendance", "high")]


def test_attendance_below_critical_threshold():
    result = score(make_record(attendance_rate=70))

    assert result.score == 40
    assert result.level == "medium"
    assert result.factors == ["critical_attendance"]
    assert result.explanations == ["Attendance 70% below 75%"]

    # with a lower critical threshold the same rate lands in the warning band
    relaxed = score(make_record(attendance_rate=70), {"attendance_critical": 65})
    assert relaxed.factors == ["low_attendance"]
    assert relaxed.score == 20


def test_everything_wrong_is_clamped_to_100():
    record = make_record(
        attendance_rate=60,
        legacy={"Mathematics": 40, "Physics": 50},
        payment_state="overdue",
        overdue_days=40,
    )
    result = score(record)

    assert result.score == 100
    assert result.level == "high"
    for factor in ("critical_attendance", "multiple_failures", "financial_stress"):
        assert factor in result.factors
    assert result.factors[0] == "critical_attendance"
    assert result.factors[-1] == "financial_stress"


def test_empty_record_is_medium_on_attendance_alone():
    result = score(SubjectRecord(subject_id="S1"))

    assert result.score == 40
    assert result.level == "medium"
    assert result.factors == ["critical_attendance"]
    assert result.recommendations[0].action == "Schedule attendance meeting"
    assert result.recommendations[0].urgency == "immediate"


def test_missing_config_uses_defaults():
    record = make_record(attendance_rate=80)
    assert score(record, None).factors == ["low_attendance"]
    assert score(record, {}).factors == ["low_attendance"]


def test_broken_config_degrades_without_raising(caplog):
    def failing_source():
        raise RuntimeError("config store offline")

    record = make_record(attendance_rate=80)
    with caplog.at_level(logging.WARNING, logger="risk_config"):
        result = score(record, failing_source)

    assert result.factors == ["low_attendance"]
    assert "config store offline" in caplog.text

    invalid = score(record, {"attendance_critical": 150, "overdueDays": 0})
    assert invalid.factors == ["low_attendance"]
    assert score(record, ["not", "a", "mapping"]).score == 20


def test_config_is_reread_on_every_call():
    calls = []
    values = [{"attendanceCritical": 50, "attendanceWarning": 65}, {}]

    def source():
        calls.append(1)
        return values[len(calls) - 1]

    record = make_record(attendance_rate=60)
    scorer = RiskScorer()

    assert scorer.score(record, source).factors == ["low_attendance"]
    assert scorer.score(record, source).factors == ["critical_attendance"]
    assert len(calls) == 2


def test_failing_count_rules():
    one_failing = score(make_record(legacy={"Mathematics": 59, "Physics": 60}))
    assert one_failing.factors[0] == "single_failure"
    assert one_failing.explanations[0] == "Failing 1 subject"

    lenient = {"failing_high": 5, "failing_medium": 3}
    two_failing = score(make_record(legacy={"Mathematics": 55, "Physics": 58, "Art": 90}), lenient)
    assert two_failing.factors[0] == "minor_failures"
    assert two_failing.recommendations[0].urgency == "medium"
    assert two_failing.score == 5 + 10

    stricter = score(make_record(legacy={"Mathematics": 65, "Physics": 90}), {"pass_mark": 70})
    assert stricter.factors[0] == "single_failure"


def test_failing_count_uses_topic_means_across_snapshots():
    record = make_record(
        snapshots={
            "unit_test_1": {"Mathematics": 50, "Physics": 64},
            "end_sem": {"Mathematics": 60, "Physics": 66},
        }
    )
    result = score(record)

    # Mathematics averages 55 and fails; Physics averages 65 and passes
    assert result.factors == ["single_failure", "improving_performance"]
    assert result.score == 15


def test_progression_contribution_is_additive():
    record = make_record(
        snapshots={
            "unit_test_1": {"Mathematics": 90, "Physics": 95},
            "end_sem": {"Mathematics": 70, "Physics": 75},
        }
    )
    result = score(record)

    assert result.score == 30
    assert result.level == "medium"
    assert result.factors == ["severe_grade_decline", "declining_mathematics", "declining_physics"]


@pytest.mark.parametrize(
    "state, days, expected",
    [
        ("Pending", 0, ["pending_fees"]),
        ("DUE", 0, ["pending_fees"]),
        ("overdue", 29, []),
        ("Overdue", 30, ["financial_stress"]),
        ("current", 90, []),
    ],
)
def test_financial_rules(state, days, expected):
    result = score(make_record(payment_state=state, overdue_days=days))
    assert result.factors == expected


@pytest.mark.parametrize("value", range(0, 151, 5))
def test_level_matches_cut_points(value):
    level = level_for_score(value)
    if value >= 60:
        assert level == "high"
    elif value >= 30:
        assert level == "medium"
    else:
        assert level == "low"


@pytest.mark.parametrize(
    "overrides",
    [
        {},
        {"attendance_rate": 0, "payment_state": "overdue", "overdue_days": 365},
        {"attendance_rate": 84.9, "legacy": {"Mathematics": 10}},
        {"attendance_rate": 100, "snapshots": {"unit_test_1": {"Art": 90}, "mid_sem": {"Art": 20}}},
    ],
)
def test_score_is_bounded_and_consistent(overrides):
    result = score(make_record(**overrides))
    assert 0 <= result.score <= 100
    assert result.level == level_for_score(result.score)


def test_apply_risk_copies_result(fixed_now):
    record = SubjectRecord(subject_id="S1")
    result = score(record)
    updated = apply_risk(record, result, provisional=True, now=fixed_now)

    assert updated.risk_level == "medium"
    assert updated.risk_score == 40
    assert updated.risk_factors == ["critical_attendance"]
    assert updated.explanation == result.explanations
    assert updated.recommendations[0].completed is False
    assert updated.risk_provisional is True
    assert updated.risk_computed_at == fixed_now
    assert record.risk_level == "pending"
