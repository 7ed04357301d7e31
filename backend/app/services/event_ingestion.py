from typing import Any, Dict, Optional, Union
import logging

from sqlalchemy.orm import Session

from ..core.exceptions import ValidationError, NotFoundError, missing_fields_error
from ..models.exam import ExamSubmission
from ..models.monitoring_log import ExamMonitoringLog, EVENT_TYPES, EVENT_CATEGORIES, EVENT_SEVERITIES
from ..schemas.monitoring import MonitoringEventCreate
from ..utils.timezone import utc_now, parse_client_timestamp

logger = logging.getLogger(__name__)

ACTIVE_SUBMISSION_STATUSES = ("in_progress", "terminated")


def find_active_submission(db: Session, exam_id: str, student_id: str) -> Optional[ExamSubmission]:
    """Latest in-progress (or already terminated) submission of a student for an exam"""
    return db.query(ExamSubmission).filter(
        ExamSubmission.exam_id == exam_id,
        ExamSubmission.student_id == student_id,
        ExamSubmission.status.in_(ACTIVE_SUBMISSION_STATUSES)
    ).order_by(ExamSubmission.created_at.desc()).first()


class EventIngestionService:
    """Validates and persists monitoring events from the exam client"""

    REQUIRED_FIELDS = ("submissionId", "examId", "eventType")

    def __init__(self, db: Session):
        self.db = db

    def ingest(self, event: Union[MonitoringEventCreate, Dict[str, Any]]) -> ExamMonitoringLog:
        """
        Persist one immutable monitoring event and commit it.

        The row is durable before this returns; any scoring happens afterwards
        and cannot undo it.
        """
        if isinstance(event, dict):
            event = MonitoringEventCreate.model_validate(event)

        submission_id = event.submission_id
        if not submission_id and event.exam_id and event.student_id:
            submission = find_active_submission(self.db, event.exam_id, event.student_id)
            if submission:
                submission_id = submission.id

        error = missing_fields_error(
            {"submissionId": submission_id, "examId": event.exam_id, "eventType": event.event_type},
            list(self.REQUIRED_FIELDS),
        )
        if error:
            raise error

        category = event.event_category or "security"
        severity = event.severity or "info"
        self._check_enum("eventType", event.event_type, EVENT_TYPES)
        self._check_enum("eventCategory", category, EVENT_CATEGORIES)
        self._check_enum("severity", severity, EVENT_SEVERITIES)

        submission = self.db.query(ExamSubmission).filter(ExamSubmission.id == submission_id).first()
        if not submission or submission.exam_id != event.exam_id:
            raise NotFoundError("Submission not found")
        if event.student_id and event.student_id != submission.student_id:
            raise NotFoundError("Submission not found")

        now = utc_now()
        log = ExamMonitoringLog(
            exam_submission_id=submission.id,
            exam_id=event.exam_id,
            student_id=submission.student_id,
            event_type=event.event_type,
            event_category=category,
            severity=severity,
            event_message=event.event_message or f"Event: {event.event_type}",
            event_data=event.event_data or {},
            event_timestamp=parse_client_timestamp(event.event_timestamp) or now,
            duration_ms=event.duration_ms,
            question_id=event.question_id,
            section_id=event.section_id,
            ip_address=event.ip_address,
            user_agent=event.user_agent,
            browser_info=event.browser_info or {},
            screen_resolution=event.screen_resolution,
            app_version=event.app_version,
            os_platform=event.os_platform,
            is_vm=bool(event.is_vm),
            vm_details=event.vm_details,
            monitor_count=event.monitor_count if event.monitor_count is not None else 1,
            created_at=now,
        )
        self.db.add(log)
        self.db.commit()
        self.db.refresh(log)
        return log

    @staticmethod
    def _check_enum(field_name: str, value: str, allowed):
        if value not in allowed:
            raise ValidationError(f"Invalid {field_name}: {value}", details=f"Allowed values: {', '.join(allowed)}")

    def recent_events(self, submission_id: str, limit: int = 50):
        return self.db.query(ExamMonitoringLog).filter(
            ExamMonitoringLog.exam_submission_id == submission_id
        ).order_by(ExamMonitoringLog.id.desc()).limit(limit).all()

    def count_events(self, submission_id: str) -> int:
        return self.db.query(ExamMonitoringLog).filter(
            ExamMonitoringLog.exam_submission_id == submission_id
        ).count()
