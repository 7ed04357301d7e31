"""
Per-submission security metrics.

Metrics are recomputed from the persisted event and violation rows (so the
result does not depend on arrival order) and written with one
INSERT .. ON CONFLICT DO UPDATE whose SET clause can only move values up.
Concurrent recomputes for the same submission therefore never lose counts,
and a stale recompute that commits last cannot lower the score or unflag.
"""
from typing import Any, Dict, Optional
import logging

from sqlalchemy import select, func, case, or_
from sqlalchemy.orm import Session

from ..core.database import SessionLocal
from ..core.exceptions import NotFoundError, InternalError
from ..models.exam import ExamSubmission
from ..models.monitoring_log import ExamMonitoringLog
from ..models.violation import ExamViolation
from ..models.security_metrics import ExamSecurityMetrics
from ..utils.timezone import utc_now
from .escalation import EscalationThresholds, risk_score_for, risk_level_for

logger = logging.getLogger(__name__)

# metrics column -> monitoring event type it counts
COUNTED_EVENTS = {
    "total_tab_switches": "tab_switched_out",
    "total_screen_locks": "screen_locked",
    "total_window_blur_events": "window_blur",
    "total_window_minimizes": "window_minimized",
    "copy_attempts": "copy_attempt",
    "paste_attempts": "paste_attempt",
    "zoom_changes": "zoom_changed",
    "network_disconnections": "network_disconnected",
}

MONOTONIC_COLUMNS = tuple(COUNTED_EVENTS) + ("monitor_count_max", "violation_count", "risk_score")
STICKY_FLAGS = ("is_vm_detected", "multi_monitor_detected", "is_flagged_for_review")

DEFAULT_METRICS: Dict[str, Any] = {
    **{column: 0 for column in COUNTED_EVENTS},
    "is_vm_detected": False,
    "multi_monitor_detected": False,
    "monitor_count_max": 1,
    "violation_count": 0,
    "risk_score": 0.0,
    "risk_level": "low",
    "is_flagged_for_review": False,
    "first_activity_at": None,
    "last_activity_at": None,
}


def _event_count(event_type: str):
    return func.coalesce(func.sum(case((ExamMonitoringLog.event_type == event_type, 1), else_=0)), 0)


class SecurityMetricsService:
    def __init__(self, db: Session, thresholds: Optional[EscalationThresholds] = None):
        self.db = db
        self.thresholds = thresholds or EscalationThresholds.from_settings()

    def get_metrics(self, submission_id: str) -> Optional[ExamSecurityMetrics]:
        return self.db.query(ExamSecurityMetrics).filter(
            ExamSecurityMetrics.exam_submission_id == submission_id
        ).first()

    def compute(self, submission: ExamSubmission, force_flag: bool = False) -> Dict[str, Any]:
        """Aggregate the submission's source rows into a metrics snapshot"""
        log = ExamMonitoringLog
        columns = [_event_count(event_type).label(column) for column, event_type in COUNTED_EVENTS.items()]
        columns += [
            func.coalesce(func.max(case((or_(log.event_type == "vm_detected", log.is_vm.is_(True)), 1), else_=0)), 0).label("vm"),
            func.coalesce(func.max(case((or_(log.event_type == "multi_monitor_detected", log.monitor_count > 1), 1), else_=0)), 0).label("multi"),
            func.coalesce(func.max(log.monitor_count), 1).label("monitor_count_max"),
            func.min(log.created_at).label("first_activity_at"),
            func.max(log.created_at).label("last_activity_at"),
        ]
        row = self.db.execute(
            select(*columns).where(log.exam_submission_id == submission.id)
        ).one()

        violation_count = self.db.scalar(
            select(func.count(ExamViolation.id)).where(ExamViolation.exam_submission_id == submission.id)
        ) or 0

        snapshot = {column: int(getattr(row, column)) for column in COUNTED_EVENTS}
        snapshot.update(
            exam_submission_id=submission.id,
            exam_id=submission.exam_id,
            student_id=submission.student_id,
            is_vm_detected=bool(row.vm),
            multi_monitor_detected=bool(row.multi),
            monitor_count_max=max(int(row.monitor_count_max or 1), 1),
            violation_count=int(violation_count),
            risk_score=risk_score_for(violation_count, self.thresholds),
            risk_level=risk_level_for(violation_count, self.thresholds),
            is_flagged_for_review=force_flag or violation_count >= self.thresholds.review_flag,
            first_activity_at=row.first_activity_at,
            last_activity_at=row.last_activity_at,
        )
        return snapshot

    def upsert(self, snapshot: Dict[str, Any]) -> ExamSecurityMetrics:
        """Write a snapshot; existing values are only ever raised"""
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
            greatest = func.greatest
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
            greatest = func.max
        else:
            raise InternalError(f"Unsupported database dialect for metrics upsert: {dialect}")

        now = utc_now()
        values = dict(snapshot, created_at=now, updated_at=now)
        table = ExamSecurityMetrics.__table__
        current = table.c
        stmt = insert(table).values(**values)
        incoming = stmt.excluded

        count_expr = greatest(current.violation_count, incoming.violation_count)
        set_ = {name: greatest(current[name], incoming[name]) for name in MONOTONIC_COLUMNS}
        set_.update({name: or_(current[name], incoming[name]) for name in STICKY_FLAGS})
        set_.update(
            risk_level=case(
                (count_expr >= self.thresholds.level_critical, "critical"),
                (count_expr >= self.thresholds.level_high, "high"),
                (count_expr >= self.thresholds.level_medium, "medium"),
                else_="low",
            ),
            first_activity_at=func.coalesce(current.first_activity_at, incoming.first_activity_at),
            last_activity_at=greatest(
                func.coalesce(current.last_activity_at, incoming.last_activity_at),
                func.coalesce(incoming.last_activity_at, current.last_activity_at),
            ),
            updated_at=incoming.updated_at,
        )

        self.db.execute(stmt.on_conflict_do_update(index_elements=[current.exam_submission_id], set_=set_))
        self.db.commit()

        metrics = self.get_metrics(snapshot["exam_submission_id"])
        self.db.refresh(metrics)
        return metrics

    def recalculate(self, submission_id: str, force_flag: bool = False) -> ExamSecurityMetrics:
        submission = self.db.query(ExamSubmission).filter(ExamSubmission.id == submission_id).first()
        if not submission:
            raise NotFoundError("Submission not found")
        return self.upsert(self.compute(submission, force_flag=force_flag))


def metrics_to_dict(metrics: Optional[ExamSecurityMetrics]) -> Dict[str, Any]:
    from ..schemas.monitoring import SecurityMetricsOut

    if metrics is None:
        return SecurityMetricsOut(**DEFAULT_METRICS).model_dump(mode="json")
    return SecurityMetricsOut.model_validate(metrics).model_dump(mode="json")


def refresh_security_metrics(submission_id: str):
    """Background entry point; failures are logged, never raised"""
    db = SessionLocal()
    try:
        SecurityMetricsService(db).recalculate(submission_id)
    except Exception as e:
        db.rollback()
        logger.error(f"Error calculating risk score for submission {submission_id}: {e}", exc_info=True)
    finally:
        db.close()
