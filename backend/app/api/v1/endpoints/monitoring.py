from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session
from typing import Optional
import logging

from ....core.config import settings
from ....core.database import get_db
from ....schemas.monitoring import (
    MonitoringEventCreate,
    StrictModeViolationCreate,
    ViolationCreate,
    CheatingFlagCreate,
    MonitoringLogOut,
    ViolationOut,
    CheatingFlagOut,
)
from ....services.cheating_flags import CheatingFlagService
from ....services.event_ingestion import EventIngestionService
from ....services.exam_session import ExamSessionService
from ....services.security_metrics import SecurityMetricsService, metrics_to_dict, refresh_security_metrics
from ....services.violation_service import ViolationService
from ....utils.client_ip import resolve_client_ip
from ...deps import get_connection_ip

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/log-event")
async def log_event(
    event: MonitoringEventCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db)
):
    """Persist one monitoring event; metrics are refreshed after the response"""
    if not event.ip_address:
        event.ip_address = resolve_client_ip(
            request.headers, get_connection_ip(request), development=settings.is_development
        )
    if not event.user_agent:
        event.user_agent = request.headers.get("user-agent")

    log = EventIngestionService(db).ingest(event)
    background_tasks.add_task(refresh_security_metrics, log.exam_submission_id)

    return {"success": True, "logId": log.id, "message": "Event logged successfully"}


@router.post("/strict-mode-violation")
async def strict_mode_violation(
    report: StrictModeViolationCreate,
    db: Session = Depends(get_db)
):
    """Violation reported by the desktop client; returns the action to enforce"""
    return ViolationService(db).report_strict_mode_violation(report)


@router.post("/log-violation")
async def log_violation(
    payload: ViolationCreate,
    db: Session = Depends(get_db)
):
    return ViolationService(db).log_violation(payload)


@router.get("/metrics/{submission_id}")
async def get_submission_metrics(
    submission_id: str,
    db: Session = Depends(get_db)
):
    """Metrics, recent events, violations and flags of a submission; zeroed when nothing was recorded"""
    metrics = SecurityMetricsService(db).get_metrics(submission_id)
    ingestion = EventIngestionService(db)
    events = ingestion.recent_events(submission_id, limit=settings.recent_events_limit)
    violations = ViolationService(db).list_submission_violations(submission_id)
    flags = CheatingFlagService(db).list_submission_flags(submission_id)

    metrics_data = metrics_to_dict(metrics)
    return {
        "success": True,
        "metrics": metrics_data,
        "recentEvents": [MonitoringLogOut.model_validate(e).model_dump(mode="json") for e in events],
        "violations": [ViolationOut.model_validate(v).model_dump(mode="json") for v in violations],
        "flags": [CheatingFlagOut.model_validate(f).model_dump(mode="json") for f in flags],
        "summary": {
            "totalEvents": ingestion.count_events(submission_id),
            "totalViolations": len(violations),
            "totalFlags": len(flags),
            "riskScore": metrics_data["risk_score"],
            "riskLevel": metrics_data["risk_level"],
        },
    }


@router.post("/flag-cheating")
async def flag_cheating(
    payload: CheatingFlagCreate,
    db: Session = Depends(get_db)
):
    return CheatingFlagService(db).flag_submission(payload)


@router.get("/flag-cheating")
async def list_cheating_flags(
    examId: str,
    status: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """Flags of an exam, newest first"""
    flags = CheatingFlagService(db).list_exam_flags(examId, status)
    return {
        "success": True,
        "flags": [CheatingFlagOut.model_validate(f).model_dump(mode="json") for f in flags],
        "count": len(flags),
    }


@router.get("/heartbeat")
async def monitoring_heartbeat(
    quizId: Optional[str] = None,
    userId: Optional[str] = None,
    db: Session = Depends(get_db)
):
    # liveness only; the device lock lives under /exams/{examId}/session
    return ExamSessionService(db).monitor_heartbeat(quizId, userId)
