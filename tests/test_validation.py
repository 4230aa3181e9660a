from datetime import date

import pytest

from engines.validation import (
    MalformedUpdateError,
    normalize_payment_state,
    normalize_position,
    overdue_days_since,
    parse_attendance_rate,
    parse_topic_scores,
    require_subject_id,
)


@pytest.mark.parametrize(
    "raw, expected",
    [("85%", 85.0), ("92", 92.0), (0.85, 85.0), (None, 0.0), ("", 0.0), ("100 %", 100.0)],
)
def test_parse_attendance_rate_formats(raw, expected):
    assert parse_attendance_rate(raw) == pytest.approx(expected)


@pytest.mark.parametrize("raw", ["often", "150", "-3%", "nan"])
def test_parse_attendance_rate_rejects_invalid(raw):
    with pytest.raises(MalformedUpdateError):
        parse_attendance_rate(raw)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Paid", "current"),
        ("Complete", "current"),
        ("Partial", "pending"),
        ("due", "pending"),
        ("LATE", "overdue"),
        ("unpaid", "overdue"),
        ("something else", "current"),
        (None, "current"),
    ],
)
def test_normalize_payment_state(raw, expected):
    assert normalize_payment_state(raw) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [("UT1", "unit_test_1"), ("unit-test-2", "unit_test_2"), ("Mid Sem", "mid_sem"), ("final", "end_sem")],
)
def test_normalize_position_aliases(raw, expected):
    assert normalize_position(raw) == expected


def test_normalize_position_rejects_unknown():
    with pytest.raises(MalformedUpdateError):
        normalize_position("quiz")
    with pytest.raises(MalformedUpdateError):
        normalize_position(None)


def test_parse_topic_scores_shapes():
    from_mapping = parse_topic_scores({"Mathematics": "71", "Art": None})
    assert [(s.topic, s.score) for s in from_mapping] == [("Mathematics", 71.0)]

    from_list = parse_topic_scores([{"subject": "Physics", "score": 0}, {"topic": "Biology", "score": 88.5}])
    assert [(s.topic, s.score) for s in from_list] == [("Physics", 0.0), ("Biology", 88.5)]

    with pytest.raises(MalformedUpdateError):
        parse_topic_scores([{"topic": "Physics", "score": 101}])
    with pytest.raises(MalformedUpdateError):
        parse_topic_scores([{"score": 50}])
    with pytest.raises(MalformedUpdateError):
        parse_topic_scores("Physics=50")


def test_overdue_days_since_floors_at_zero():
    today = date(2024, 3, 1)
    assert overdue_days_since("2024-02-20", today) == 10
    assert overdue_days_since("2024-04-01", today) == 0
    assert overdue_days_since(None, today) == 0
    with pytest.raises(MalformedUpdateError):
        overdue_days_since("next week", today)


def test_require_subject_id():
    assert require_subject_id({"subject_id": " S1 "}) == "S1"
    assert require_subject_id({"student_id": 42}) == "42"
    with pytest.raises(MalformedUpdateError):
        require_subject_id({"name": "Nobody"})
