from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..core.exceptions import NotFoundError, InternalError, UnauthorizedError, missing_fields_error
from ..models.exam import ExamSubmission
from ..models.violation import ExamViolation
from ..schemas.monitoring import StrictModeViolationCreate, ViolationCreate, ViolationReview
from ..utils.timezone import utc_now, parse_client_timestamp
from .event_ingestion import EventIngestionService, find_active_submission
from .escalation import EscalationEngine, EscalationAction, EscalationOutcome
from .violation_classifier import classify, canonical_violation_type, map_severity

logger = logging.getLogger(__name__)

ACTIONS_TAKEN = ("warning_shown", "logged_only", "exam_terminated", "flagged_for_review", "none")


class ViolationService:
    def __init__(self, db: Session, escalation: Optional[EscalationEngine] = None):
        self.db = db
        self.escalation = escalation or EscalationEngine(db)

    def count_violations(self, submission_id: str) -> int:
        return self.db.query(func.count(ExamViolation.id)).filter(
            ExamViolation.exam_submission_id == submission_id
        ).scalar() or 0

    def report_strict_mode_violation(self, report: StrictModeViolationCreate) -> Dict[str, Any]:
        """
        Handle a violation reported by the desktop client in strict mode.

        Order: audit event (must succeed) -> violation record -> count ->
        escalation. Only the audit write can fail the request.
        """
        error = missing_fields_error(
            {"userId": report.user_id, "quizId": report.quiz_id, "violationType": report.violation_type},
            ["userId", "quizId", "violationType"],
        )
        if error:
            raise error

        classified = classify(report.violation_type, report.severity if report.severity is not None else "medium")

        submission = find_active_submission(self.db, report.quiz_id, report.user_id)
        if not submission:
            logger.error(f"Submission not found for user {report.user_id} in exam {report.quiz_id}")
            raise NotFoundError("Submission not found")

        occurred_at = parse_client_timestamp(report.timestamp) or utc_now()
        message = f"Strict mode violation: {classified.client_type}"

        try:
            log = EventIngestionService(self.db).ingest({
                "submission_id": submission.id,
                "exam_id": submission.exam_id,
                "student_id": report.user_id,
                "event_type": classified.event_type,
                "event_category": "violation",
                "severity": classified.severity,
                "event_message": message,
                "event_data": {
                    "violationType": classified.client_type,
                    "details": report.details,
                    "originalTimestamp": report.timestamp,
                },
                "event_timestamp": occurred_at.isoformat(),
            })
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error logging violation: {e}", exc_info=True)
            raise InternalError("Failed to log violation", details=str(e))

        errors: List[str] = []
        try:
            self._record_violation(
                submission,
                violation_type=classified.violation_type,
                severity=classified.severity,
                message=str(report.details) if isinstance(report.details, str) and report.details else message,
                details={"violationType": classified.client_type, "details": report.details, "autoDetected": True},
                occurred_at=occurred_at,
                monitoring_log_id=log.id,
            )
        except Exception as e:
            self.db.rollback()
            logger.warning(f"Error creating violation record: {e}")
            errors.append("Failed to create violation record")

        outcome = self.escalation.escalate(submission, self.count_violations(submission.id))
        outcome.errors[:0] = errors

        response = {
            "status": "ok",
            "logged": True,
            "action": outcome.action.value,
            "violationCount": outcome.violation_count,
            "message": outcome.message,
        }
        if outcome.errors:
            response["escalationErrors"] = outcome.errors
        return response

    def log_violation(self, payload: ViolationCreate) -> Dict[str, Any]:
        """Record a violation detected elsewhere (browser checks, manual proctor)"""
        error = missing_fields_error(
            {
                "submissionId": payload.submission_id,
                "examId": payload.exam_id,
                "violationType": payload.violation_type,
                "violationMessage": payload.violation_message,
            },
            ["submissionId", "examId", "violationType", "violationMessage"],
        )
        if error:
            raise error

        submission = self.db.query(ExamSubmission).filter(ExamSubmission.id == payload.submission_id).first()
        if not submission or submission.exam_id != payload.exam_id:
            raise NotFoundError("Submission not found")
        if payload.student_id and payload.student_id != submission.student_id:
            raise NotFoundError("Submission not found")

        severity = map_severity(payload.violation_severity or "medium")
        action_taken = payload.action_taken if payload.action_taken in ACTIONS_TAKEN else "logged_only"

        try:
            violation = self._record_violation(
                submission,
                violation_type=canonical_violation_type(payload.violation_type),
                severity=severity,
                message=payload.violation_message,
                details=dict(payload.violation_details or {}, reportedType=payload.violation_type),
                occurred_at=utc_now(),
                monitoring_log_id=payload.monitoring_log_id,
                question_id=payload.question_id,
                action_taken=action_taken,
                auto_detected=payload.auto_detected if payload.auto_detected is not None else True,
            )
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error logging violation: {e}", exc_info=True)
            raise InternalError("Failed to log violation", details=str(e))

        violation_count = self.count_violations(submission.id)
        outcome = self.escalation.escalate(submission, violation_count)

        if severity == "critical" and outcome.action is not EscalationAction.TERMINATE:
            self._flag_critical_violation(submission, violation, violation_count, outcome)

        response = {
            "success": True,
            "violationId": violation.id,
            "violationCount": violation_count,
            "action": outcome.action.value,
            "shouldTerminate": outcome.action is EscalationAction.TERMINATE,
            "message": "Violation logged successfully",
        }
        if outcome.errors:
            response["escalationErrors"] = outcome.errors
        return response

    def _flag_critical_violation(
        self,
        submission: ExamSubmission,
        violation: ExamViolation,
        violation_count: int,
        outcome: EscalationOutcome,
    ):
        from .cheating_flags import CheatingFlagService
        from .security_metrics import SecurityMetricsService

        try:
            CheatingFlagService(self.db).ensure_open_flag(
                submission,
                reason=violation.violation_message,
                severity="critical",
                violations_count=violation_count,
                auto_flagged=True,
                details={
                    "violationType": violation.violation_type,
                    "violationId": violation.id,
                    "totalViolations": violation_count,
                },
            )
            SecurityMetricsService(self.db, self.escalation.thresholds).recalculate(submission.id, force_flag=True)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error flagging critical violation {violation.id}: {e}", exc_info=True)
            outcome.errors.append("Failed to create cheating flag")

    def _record_violation(
        self,
        submission: ExamSubmission,
        violation_type: str,
        severity: str,
        message: str,
        details: Dict[str, Any],
        occurred_at,
        monitoring_log_id: Optional[int] = None,
        question_id: Optional[str] = None,
        action_taken: Optional[str] = None,
        auto_detected: bool = True,
    ) -> ExamViolation:
        violation = ExamViolation(
            exam_submission_id=submission.id,
            exam_id=submission.exam_id,
            student_id=submission.student_id,
            violation_type=violation_type,
            violation_severity=severity,
            violation_message=message,
            violation_details=details,
            violation_timestamp=occurred_at,
            question_id=question_id,
            action_taken=action_taken,
            auto_detected=auto_detected,
            monitoring_log_id=monitoring_log_id,
            is_reviewed=False,
            created_at=utc_now(),
        )
        self.db.add(violation)
        self.db.commit()
        self.db.refresh(violation)
        return violation

    def list_submission_violations(self, submission_id: str) -> List[ExamViolation]:
        return self.db.query(ExamViolation).filter(
            ExamViolation.exam_submission_id == submission_id
        ).order_by(ExamViolation.created_at.desc(), ExamViolation.id.desc()).all()

    def list_exam_violations(self, exam_id: str, reviewed: Optional[bool] = None) -> List[ExamViolation]:
        query = self.db.query(ExamViolation).filter(ExamViolation.exam_id == exam_id)
        if reviewed is not None:
            query = query.filter(ExamViolation.is_reviewed == reviewed)
        return query.order_by(ExamViolation.created_at.desc(), ExamViolation.id.desc()).all()

    def review_violation(self, violation_id: int, reviewer_id: Optional[str], review: ViolationReview) -> ExamViolation:
        if not reviewer_id:
            raise UnauthorizedError("Reviewer identity required")

        violation = self.db.query(ExamViolation).filter(ExamViolation.id == violation_id).first()
        if not violation:
            raise NotFoundError("Violation not found")

        violation.is_reviewed = True
        violation.reviewed_by = reviewer_id
        violation.reviewed_at = utc_now()
        violation.is_justified = review.is_justified
        violation.review_notes = review.review_notes
        self.db.commit()
        self.db.refresh(violation)
        return violation
