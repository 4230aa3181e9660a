"""Assessment service wiring the merge/gate/score pipeline to the subject store.

The scoring core is pure; this module supplies what it expects from its host:
at most one read-merge-score-write sequence per subject at a time, a fresh
configuration snapshot for every computation, and persistence.
"""

from __future__ import annotations

import logging
import threading
import weakref
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

import db
from engines.completion import should_compute
from engines.merger import clear_source, merge, resolve_role
from engines.risk_scorer import RiskScorer, apply_risk
from engines.validation import MalformedUpdateError, require_subject_id
from risk_config import ConfigSource
from schemas import SubjectRecord

logger = logging.getLogger(__name__)


class SubjectNotFoundError(KeyError):
    """Raised when an operation targets a subject that was never ingested."""


@dataclass
class IngestOutcome:
    record: SubjectRecord
    computed: bool


@dataclass
class BatchReport:
    updated: int = 0
    computed: int = 0
    rejected: List[Dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "updated": self.updated,
            "computed": self.computed,
            "rejected": list(self.rejected),
        }


class SubjectAssessmentService:
    """Serialize merge-then-score per subject and persist the outcome.

    ``config_source`` is called for every computation; the default reads the
    thresholds stored in the database.
    """

    def __init__(
        self,
        config_source: Optional[Callable[[], ConfigSource]] = None,
        scorer: Optional[RiskScorer] = None,
    ) -> None:
        self._config_source = config_source or db.load_config
        self.scorer = scorer or RiskScorer()
        # Entries drop out once no caller holds the lock
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def _lock_for(self, subject_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(subject_id)
            if lock is None:
                lock = self._locks[subject_id] = threading.Lock()
            return lock

    def _score_into(self, record: SubjectRecord, *, force: bool) -> SubjectRecord:
        result = self.scorer.score(record, self._config_source)
        return apply_risk(record, result, provisional=force and not record.complete)

    # ----- public API --------------------------------------------------
    def ingest(self, source_role: str, fields: Mapping[str, Any], *, force: bool = False) -> IngestOutcome:
        """Merge one partial update and score the record once the gate opens."""

        role = resolve_role(source_role)
        subject_id = require_subject_id(fields)
        with self._lock_for(subject_id):
            existing = db.get_subject(subject_id)
            record = merge(existing, role, fields)
            computed = should_compute(record, force)
            if computed:
                record = self._score_into(record, force=force)
                logger.info(
                    "Risk for %s: %s (%d)%s",
                    subject_id,
                    record.risk_level,
                    record.risk_score,
                    " [provisional]" if record.risk_provisional else "",
                )
            else:
                logger.info(
                    "Risk calculation pending for %s; waiting for %s",
                    subject_id,
                    ", ".join(record.completion.missing()),
                )
            db.save_subject(record)
        return IngestOutcome(record=record, computed=computed)

    def ingest_rows(self, source_role: str, rows: Iterable[Mapping[str, Any]], *, force: bool = False) -> BatchReport:
        """Ingest many rows from one source; malformed rows are reported, not fatal."""

        role = resolve_role(source_role)
        report = BatchReport()
        for index, row in enumerate(rows):
            try:
                outcome = self.ingest(role, row, force=force)
            except MalformedUpdateError as exc:
                logger.warning("Rejected %s row %d: %s", role, index, exc)
                report.rejected.append({"row": index, "error": str(exc)})
                continue
            report.updated += 1
            if outcome.computed:
                report.computed += 1
        return report

    def get(self, subject_id: str) -> SubjectRecord:
        record = db.get_subject(subject_id)
        if record is None:
            raise SubjectNotFoundError(subject_id)
        return record

    def recalculate(self, subject_id: str) -> SubjectRecord:
        """Force a recomputation for one subject regardless of completeness."""

        with self._lock_for(subject_id):
            record = self.get(subject_id)
            record = self._score_into(record, force=True)
            db.save_subject(record)
        logger.info("Recalculated risk for %s: %s (%d)", subject_id, record.risk_level, record.risk_score)
        return record

    def recalculate_all(self) -> Dict[str, int]:
        """Rescore complete subjects and reset incomplete ones to pending."""

        scored = reset = failed = 0
        subject_ids = db.list_subject_ids()
        for subject_id in subject_ids:
            with self._lock_for(subject_id):
                record = db.get_subject(subject_id)
                if record is None:
                    continue
                try:
                    if should_compute(record):
                        record = self._score_into(record, force=False)
                        scored += 1
                    else:
                        record = record.model_copy(
                            update={
                                "risk_level": "pending",
                                "risk_score": 0,
                                "risk_factors": [],
                                "explanation": [],
                                "recommendations": [],
                                "risk_provisional": False,
                                "risk_computed_at": None,
                            }
                        )
                        reset += 1
                    db.save_subject(record)
                except Exception:
                    logger.exception("Risk recalculation failed for %s", subject_id)
                    failed += 1
        logger.info("Recalculation finished: %d scored, %d reset, %d failed", scored, reset, failed)
        return {"total": len(subject_ids), "scored": scored, "reset": reset, "failed": failed}

    def clear_source(self, subject_id: str, source_role: str) -> SubjectRecord:
        """Remove one source's data from a subject and mark its risk pending."""

        role = resolve_role(source_role)
        with self._lock_for(subject_id):
            record = clear_source(self.get(subject_id), role)
            db.save_subject(record)
        logger.info("Cleared %s data for %s", role, subject_id)
        return record

    def summary(self) -> Dict[str, Any]:
        return db.subject_summary()
