"""Validation and normalization of partial subject updates."""

from __future__ import annotations

import math
import re
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional

from schemas import SNAPSHOT_POSITIONS, TopicScore


class ValidationError(Exception):
    """Base class for validation errors."""
    pass


class MalformedUpdateError(ValidationError, ValueError):
    """Raised when a partial update cannot be applied to a subject record."""
    pass


IDENTITY_KEYS = ("subject_id", "student_id")

_PAYMENT_STATES = {
    "completed": "current",
    "complete": "current",
    "paid": "current",
    "done": "current",
    "finished": "current",
    "current": "current",
    "pending": "pending",
    "partial": "pending",
    "waiting": "pending",
    "due": "pending",
    "incomplete": "overdue",
    "overdue": "overdue",
    "late": "overdue",
    "unpaid": "overdue",
    "default": "overdue",
}

_POSITION_ALIASES = {
    "ut1": "unit_test_1",
    "unit_test1": "unit_test_1",
    "ut2": "unit_test_2",
    "unit_test2": "unit_test_2",
    "midsem": "mid_sem",
    "mid_semester": "mid_sem",
    "midterm": "mid_sem",
    "endsem": "end_sem",
    "end_semester": "end_sem",
    "final": "end_sem",
}


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def require_subject_id(fields: Mapping[str, Any]) -> str:
    """Return the identity key carried by ``fields``.

    Raises MalformedUpdateError when no non-empty key is present.
    """
    for key in IDENTITY_KEYS:
        subject_id = _text(fields.get(key))
        if subject_id:
            return subject_id
    raise MalformedUpdateError("Partial update is missing its subject_id")


def parse_attendance_rate(value: Any) -> float:
    """Parse attendance given as ``"85%"``, ``0.85`` or ``85`` into a percentage."""
    text = _text(value)
    if text is None:
        return 0.0

    is_percent = text.endswith("%")
    try:
        rate = float(text.rstrip("%").strip())
    except ValueError as exc:
        raise MalformedUpdateError(f"Attendance rate is not numeric: {value!r}") from exc

    if math.isnan(rate):
        raise MalformedUpdateError("Attendance rate is not numeric: nan")
    if not is_percent and 0.0 <= rate <= 1.0:
        rate *= 100.0
    if not 0.0 <= rate <= 100.0:
        raise MalformedUpdateError(f"Attendance rate must be within [0, 100], got {value!r}")
    return rate


def normalize_payment_state(value: Any) -> str:
    """Map a free-text fee status onto ``current``, ``pending`` or ``overdue``."""
    text = _text(value)
    if text is None:
        return "current"
    return _PAYMENT_STATES.get(text.lower(), "current")


def parse_non_negative_int(value: Any, field: str) -> int:
    text = _text(value)
    if text is None:
        return 0
    try:
        number = float(text)
    except ValueError as exc:
        raise MalformedUpdateError(f"{field} must be a whole number, got {value!r}") from exc
    if not math.isfinite(number):
        raise MalformedUpdateError(f"{field} must be a finite number, got {value!r}")
    number = int(number)
    if number < 0:
        raise MalformedUpdateError(f"{field} must not be negative")
    return number


def parse_amount(value: Any, field: str) -> float:
    text = _text(value)
    if text is None:
        return 0.0
    try:
        amount = float(text)
    except ValueError as exc:
        raise MalformedUpdateError(f"{field} must be numeric, got {value!r}") from exc
    if not math.isfinite(amount):
        raise MalformedUpdateError(f"{field} must be a finite number, got {value!r}")
    if amount < 0:
        raise MalformedUpdateError(f"{field} must not be negative")
    return amount


def overdue_days_since(due_date: Any, today: date) -> int:
    """Days elapsed since ``due_date`` (ISO format), floored at zero."""
    text = _text(due_date)
    if text is None:
        return 0
    try:
        due = datetime.fromisoformat(text).date()
    except ValueError as exc:
        raise MalformedUpdateError(f"Due date is not an ISO date: {due_date!r}") from exc
    return max(0, (today - due).days)


def normalize_position(exam_type: Any) -> str:
    """Return the canonical snapshot position for ``exam_type``."""
    text = _text(exam_type)
    if text is None:
        raise MalformedUpdateError("Snapshot position is required")
    key = re.sub(r"[\s\-]+", "_", text.lower())
    key = _POSITION_ALIASES.get(key, key)
    if key not in SNAPSHOT_POSITIONS:
        raise MalformedUpdateError(
            f"Unknown snapshot position {exam_type!r}. Must be one of: {', '.join(SNAPSHOT_POSITIONS)}"
        )
    return key


def parse_topic_scores(value: Any) -> List[TopicScore]:
    """Parse scores given as ``[{topic, score}]`` or ``{topic: score}``.

    Entries without a score are skipped; out-of-range scores are rejected.
    """
    if value is None:
        return []

    pairs: List[tuple[Any, Any]] = []
    if isinstance(value, Mapping):
        pairs = list(value.items())
    elif isinstance(value, list):
        for entry in value:
            if not isinstance(entry, Mapping):
                raise MalformedUpdateError("Each grade entry must be an object")
            topic = entry.get("topic", entry.get("subject"))
            pairs.append((topic, entry.get("score")))
    else:
        raise MalformedUpdateError("Scores must be a list of entries or a topic mapping")

    scores: List[TopicScore] = []
    for topic, raw_score in pairs:
        topic_text = _text(topic)
        if topic_text is None:
            raise MalformedUpdateError("Grade entry is missing its topic")
        if _text(raw_score) is None:
            continue
        try:
            score = float(raw_score)
        except (TypeError, ValueError) as exc:
            raise MalformedUpdateError(f"Score for {topic_text} is not numeric") from exc
        if not 0.0 <= score <= 100.0:
            raise MalformedUpdateError(f"Score for {topic_text} must be within [0, 100]")
        scores.append(TopicScore(topic=topic_text, score=score))
    return scores


def parse_snapshots(value: Any) -> Dict[str, List[TopicScore]]:
    if not isinstance(value, Mapping):
        raise MalformedUpdateError("snapshots must map snapshot positions to scores")
    return {normalize_position(position): parse_topic_scores(scores) for position, scores in value.items()}
