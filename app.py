# app.py - HTTP surface for the at-risk subject tracker
# - Role-tagged partial updates, completion-gated risk computation
# - Manual recalculation, per-source clearing, dashboard summary
# - Threshold configuration re-read on every computation

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException

import db
from assessment import SubjectAssessmentService, SubjectNotFoundError
from engines.validation import MalformedUpdateError
from risk_config import RiskConfigError, resolve_thresholds, update_thresholds
from schemas import SubjectUpdateBatch

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(_: FastAPI):
    try:
        # Validate environment variables first
        from env_validation import configure_logging, validate_environment
        validate_environment()
        configure_logging()

        db.init()
        logger.info("Subject store ready at %s", db.DB_PATH)
        yield
    except Exception as e:
        logger.error("Failed to initialize application: %s", str(e), exc_info=True)
        raise


app = FastAPI(title="At-Risk Subject Tracker", version="1.0.0", lifespan=_lifespan)

assessment_service = SubjectAssessmentService()


def _record_payload(record) -> Dict[str, Any]:
    return record.model_dump(mode="json")


@app.post("/subjects/updates")
def ingest_updates(body: SubjectUpdateBatch):
    try:
        report = assessment_service.ingest_rows(body.role, body.rows, force=body.force)
    except MalformedUpdateError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    message = (
        "Risk assessment calculated"
        if report.computed
        else "Data saved. Risk assessment will be calculated after all sources provide their data."
    )
    return {"success": True, "message": message, **report.as_dict()}


@app.get("/subjects")
def list_subjects(risk_level: Optional[str] = None, limit: int = 50):
    if limit <= 0:
        raise HTTPException(status_code=400, detail="limit must be positive")
    records = db.list_subjects(risk_level=risk_level, limit=limit)
    return {"success": True, "subjects": [_record_payload(record) for record in records]}


@app.get("/subjects/{subject_id}")
def get_subject(subject_id: str):
    try:
        record = assessment_service.get(subject_id)
    except SubjectNotFoundError:
        raise HTTPException(status_code=404, detail="subject not found")
    return {"success": True, "subject": _record_payload(record)}


@app.post("/subjects/recalculate")
def recalculate_all():
    results = assessment_service.recalculate_all()
    return {"success": True, "results": results}


@app.post("/subjects/{subject_id}/recalculate")
def recalculate(subject_id: str):
    try:
        record = assessment_service.recalculate(subject_id)
    except SubjectNotFoundError:
        raise HTTPException(status_code=404, detail="subject not found")
    return {"success": True, "subject": _record_payload(record)}


@app.delete("/subjects/{subject_id}/sources/{role}")
def clear_source(subject_id: str, role: str):
    try:
        record = assessment_service.clear_source(subject_id, role)
    except SubjectNotFoundError:
        raise HTTPException(status_code=404, detail="subject not found")
    except MalformedUpdateError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {
        "success": True,
        "subject_id": record.subject_id,
        "completion": record.completion.model_dump(mode="json"),
    }


@app.get("/dashboard/summary")
def dashboard_summary():
    return {"success": True, "summary": assessment_service.summary()}


@app.get("/config")
def get_config():
    stored = db.load_config()
    return {
        "success": True,
        "source": "stored" if stored else "default",
        "config": resolve_thresholds(stored).model_dump(),
    }


@app.put("/config")
def update_config(body: Dict[str, Any]):
    updated_by = str(body.pop("updatedBy", None) or body.pop("updated_by", None) or "admin")
    current = resolve_thresholds(db.load_config())
    try:
        thresholds = update_thresholds(current, body)
    except RiskConfigError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    db.save_config(thresholds.model_dump(), updated_by=updated_by)
    return {"success": True, "config": thresholds.model_dump()}


@app.delete("/config")
def reset_config():
    db.reset_config()
    return {"success": True, "config": resolve_thresholds(None).model_dump()}
