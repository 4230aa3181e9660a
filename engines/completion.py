"""Completion gate deciding when a subject record may be scored."""

from __future__ import annotations

from schemas import SubjectRecord


def should_compute(record: SubjectRecord, force: bool = False) -> bool:
    """Return True when every source has reported or the caller forces a run."""

    return bool(force) or record.completion.complete
