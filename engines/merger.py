"""Merge partial updates from independent source roles into subject records.

Each source role owns a disjoint slice of the record:

* ``academic`` (exam department): name, assessment snapshots, legacy grades
* ``attendance`` (faculty): attendance rate
* ``financial`` (local guardian / finance office): payment state, overdue
  days, amounts and due date

Merging applies only the slice owned by the reporting role, raises that role's
completion flag and leaves everything else untouched. No risk is computed here.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from schemas import SOURCE_ROLES, CompletionFlags, SubjectRecord, utcnow
from engines.validation import (
    MalformedUpdateError,
    normalize_payment_state,
    normalize_position,
    overdue_days_since,
    parse_amount,
    parse_attendance_rate,
    parse_non_negative_int,
    parse_snapshots,
    parse_topic_scores,
    require_subject_id,
)

logger = logging.getLogger(__name__)

ROLE_ALIASES: Dict[str, str] = {
    "exam-department": "academic",
    "exam_department": "academic",
    "faculty": "attendance",
    "local-guardian": "financial",
    "local_guardian": "financial",
}

ROLE_FIELDS: Dict[str, frozenset[str]] = {
    "academic": frozenset(
        {"name", "snapshots", "exam_type", "scores", "grades", "legacy_grades"}
    ),
    "attendance": frozenset({"attendance_rate", "attendance"}),
    "financial": frozenset(
        {
            "payment_state",
            "fee_status",
            "overdue_days",
            "days_overdue",
            "due_date",
            "amount_paid",
            "amount_due",
        }
    ),
}

_IGNORED_KEYS = frozenset({"subject_id", "student_id"})


def resolve_role(source_role: str) -> str:
    """Return the canonical source role for ``source_role`` or its alias."""

    role = str(source_role or "").strip().lower()
    role = ROLE_ALIASES.get(role, role)
    if role not in SOURCE_ROLES:
        raise MalformedUpdateError(f"Unknown source role: {source_role!r}")
    return role


def new_record(subject_id: str, *, now: Optional[datetime] = None) -> SubjectRecord:
    """Create a record with every source-owned field at its default."""

    return SubjectRecord(subject_id=subject_id, last_updated=now or utcnow())


def merge(
    existing: Optional[SubjectRecord],
    source_role: str,
    partial_fields: Mapping[str, Any],
    *,
    now: Optional[datetime] = None,
) -> SubjectRecord:
    """Apply ``partial_fields`` reported by ``source_role`` and return a new record.

    Raises MalformedUpdateError when the update carries no identity key, names
    a different subject than ``existing``, or holds unparseable values. The
    input record is never modified.
    """

    role = resolve_role(source_role)
    subject_id = require_subject_id(partial_fields)
    if existing is not None and existing.subject_id != subject_id:
        raise MalformedUpdateError(
            f"Update for {subject_id!r} cannot be merged into {existing.subject_id!r}"
        )

    stamp = now or utcnow()
    record = existing.model_copy(deep=True) if existing is not None else new_record(subject_id, now=stamp)

    ignored = sorted(set(partial_fields) - ROLE_FIELDS[role] - _IGNORED_KEYS)
    if ignored:
        logger.debug("Ignoring fields not owned by %s for %s: %s", role, subject_id, ignored)

    updates = _ROLE_APPLIERS[role](record, partial_fields, stamp)
    updates["completion"] = _set_flag(record.completion, role, True, stamp)
    updates["last_updated"] = stamp
    return record.model_copy(update=updates)


def clear_source(
    record: SubjectRecord,
    source_role: str,
    *,
    now: Optional[datetime] = None,
) -> SubjectRecord:
    """Drop everything ``source_role`` reported and reset the risk outputs."""

    role = resolve_role(source_role)
    stamp = now or utcnow()
    defaults = SubjectRecord(subject_id=record.subject_id)

    updates: Dict[str, Any] = {
        field: getattr(defaults, field) for field in _CLEARED_FIELDS[role]
    }
    updates.update(
        completion=_set_flag(record.completion, role, False, stamp),
        risk_level="pending",
        risk_score=0,
        risk_factors=[],
        explanation=[],
        recommendations=[],
        risk_provisional=False,
        risk_computed_at=None,
        last_updated=stamp,
    )
    return record.model_copy(deep=True, update=updates)


# ----- per-role appliers ------------------------------------------------
def _apply_academic(record: SubjectRecord, fields: Mapping[str, Any], _: datetime) -> Dict[str, Any]:
    updates: Dict[str, Any] = {}
    name = fields.get("name")
    if name is not None and str(name).strip():
        updates["name"] = str(name).strip()

    snapshots = {position: list(scores) for position, scores in record.snapshots.items()}
    if "snapshots" in fields:
        snapshots.update(parse_snapshots(fields["snapshots"]))
    if "exam_type" in fields:
        position = normalize_position(fields["exam_type"])
        snapshots[position] = parse_topic_scores(fields.get("scores"))
    updates["snapshots"] = snapshots

    for key in ("legacy_grades", "grades"):
        if key in fields:
            updates["legacy_grades"] = parse_topic_scores(fields[key])
            break
    return updates


def _apply_attendance(record: SubjectRecord, fields: Mapping[str, Any], _: datetime) -> Dict[str, Any]:
    for key in ("attendance_rate", "attendance"):
        if key in fields:
            return {"attendance_rate": parse_attendance_rate(fields[key])}
    return {}


def _apply_financial(record: SubjectRecord, fields: Mapping[str, Any], now: datetime) -> Dict[str, Any]:
    updates: Dict[str, Any] = {}
    for key in ("payment_state", "fee_status"):
        if key in fields:
            updates["payment_state"] = normalize_payment_state(fields[key])
            break

    if "due_date" in fields:
        due_date = fields["due_date"]
        updates["due_date"] = str(due_date).strip() if due_date else None
        updates["overdue_days"] = overdue_days_since(due_date, now.date())
    for key in ("overdue_days", "days_overdue"):
        if key in fields:
            updates["overdue_days"] = parse_non_negative_int(fields[key], "overdue_days")
            break

    for key in ("amount_paid", "amount_due"):
        if key in fields:
            updates[key] = parse_amount(fields[key], key)
    return updates


_ROLE_APPLIERS = {
    "academic": _apply_academic,
    "attendance": _apply_attendance,
    "financial": _apply_financial,
}

_CLEARED_FIELDS = {
    "academic": ("snapshots", "legacy_grades"),
    "attendance": ("attendance_rate",),
    "financial": ("payment_state", "overdue_days", "amount_paid", "amount_due", "due_date"),
}


def _set_flag(flags: CompletionFlags, role: str, value: bool, stamp: datetime) -> CompletionFlags:
    updated_at = dict(flags.updated_at)
    updated_at[role] = stamp
    return flags.model_copy(update={role: value, "updated_at": updated_at})
