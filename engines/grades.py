"""Helpers deriving per-topic grade views from assessment snapshots."""

from __future__ import annotations

import math
from typing import Dict, List

from schemas import SNAPSHOT_POSITIONS, GradeEntry, SubjectRecord


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def topic_series(record: SubjectRecord) -> Dict[str, List[float]]:
    """Return present scores per topic in snapshot order, skipping missing positions."""

    series: Dict[str, List[float]] = {}
    for position in SNAPSHOT_POSITIONS:
        for entry in record.snapshots.get(position, ()):
            series.setdefault(entry.topic, []).append(entry.score)
    return series


def flatten_grades(record: SubjectRecord, pass_mark: float = 60.0) -> List[GradeEntry]:
    """One grade per topic: the rounded mean of its snapshot scores.

    Records without snapshot data fall back to their legacy grade list.
    """

    series = topic_series(record)
    if series:
        grades = []
        for topic, scores in series.items():
            score = round_half_up(sum(scores) / len(scores))
            grades.append(GradeEntry(topic=topic, score=score, passed=score >= pass_mark))
        return grades

    return [
        GradeEntry(topic=entry.topic, score=entry.score, passed=entry.score >= pass_mark)
        for entry in record.legacy_grades
    ]
