from typing import Any, Dict, List, Optional, Tuple
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.exceptions import NotFoundError, ValidationError, missing_fields_error
from ..models.exam import ExamSubmission
from ..models.cheating_flag import ExamCheatingFlag, OPEN_FLAG_STATUSES, FLAG_STATUSES
from ..schemas.monitoring import CheatingFlagCreate

logger = logging.getLogger(__name__)

FLAG_SEVERITIES = ("medium", "high", "critical")


class CheatingFlagService:
    def __init__(self, db: Session):
        self.db = db

    def get_open_flag(self, submission_id: str) -> Optional[ExamCheatingFlag]:
        return self.db.query(ExamCheatingFlag).filter(
            ExamCheatingFlag.exam_submission_id == submission_id,
            ExamCheatingFlag.flag_status.in_(OPEN_FLAG_STATUSES)
        ).first()

    def ensure_open_flag(
        self,
        submission: ExamSubmission,
        reason: str,
        severity: str = "high",
        violations_count: int = 0,
        auto_flagged: bool = True,
        details: Optional[Dict[str, Any]] = None,
        notify: bool = True,
    ) -> Tuple[ExamCheatingFlag, bool]:
        """
        Return the submission's open flag, creating it when there is none.

        The partial unique index on open flags makes a concurrent duplicate
        insert fail; the loser re-reads and returns the winner's row.
        """
        existing = self.get_open_flag(submission.id)
        if existing:
            return existing, False

        flag = ExamCheatingFlag(
            exam_submission_id=submission.id,
            exam_id=submission.exam_id,
            student_id=submission.student_id,
            flag_reason=reason,
            flag_severity=severity if severity in FLAG_SEVERITIES else "high",
            flag_details=details or {},
            flag_status="pending",
            violations_count=violations_count,
            auto_flagged=auto_flagged,
            requires_manual_review=True,
        )
        self.db.add(flag)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self.get_open_flag(submission.id)
            if existing is None:
                raise
            return existing, False

        self.db.refresh(flag)
        logger.warning(f"Cheating flag {flag.id} created for submission {submission.id}: {reason}")
        if notify:
            self._dispatch_notification(flag.id)
        return flag, True

    def flag_submission(self, payload: CheatingFlagCreate) -> Dict[str, Any]:
        """
        Manual or client-reported flag. An open flag for the submission is
        updated with the new evidence instead of opening a second one.
        """
        from .security_metrics import SecurityMetricsService

        error = missing_fields_error(
            {"submissionId": payload.submission_id, "examId": payload.exam_id, "reason": payload.reason},
            ["submissionId", "examId", "reason"],
        )
        if error:
            raise error

        submission = self.get_submission(payload.submission_id)
        if submission.exam_id != payload.exam_id:
            raise NotFoundError("Submission not found")

        existing = self.get_open_flag(submission.id)
        if existing:
            flag = self.update_open_flag(existing, details=payload.details, violations_count=payload.violations_count)
            return {"success": True, "flagId": flag.id, "isNew": False, "message": "Existing flag updated"}

        flag, created = self.ensure_open_flag(
            submission,
            reason=payload.reason,
            severity=payload.severity or "high",
            violations_count=payload.violations_count or 0,
            auto_flagged=payload.auto_flagged if payload.auto_flagged is not None else True,
            details=payload.details,
            notify=payload.notify_teacher if payload.notify_teacher is not None else True,
        )

        try:
            SecurityMetricsService(self.db).recalculate(submission.id, force_flag=True)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error flagging security metrics for {submission.id}: {e}", exc_info=True)

        return {
            "success": True,
            "flagId": flag.id,
            "isNew": created,
            "message": "Cheating flag created successfully" if created else "Existing flag updated",
        }

    def update_open_flag(
        self,
        flag: ExamCheatingFlag,
        details: Optional[Dict[str, Any]] = None,
        violations_count: Optional[int] = None,
    ) -> ExamCheatingFlag:
        if details is not None:
            flag.flag_details = details
        if violations_count is not None:
            flag.violations_count = max(flag.violations_count or 0, violations_count)
        self.db.commit()
        self.db.refresh(flag)
        return flag

    def list_exam_flags(self, exam_id: str, status: Optional[str] = None) -> List[ExamCheatingFlag]:
        query = self.db.query(ExamCheatingFlag).filter(ExamCheatingFlag.exam_id == exam_id)
        if status:
            if status not in FLAG_STATUSES:
                raise ValidationError(f"Invalid flag status: {status}")
            query = query.filter(ExamCheatingFlag.flag_status == status)
        return query.order_by(ExamCheatingFlag.created_at.desc(), ExamCheatingFlag.id.desc()).all()

    def list_submission_flags(self, submission_id: str) -> List[ExamCheatingFlag]:
        return self.db.query(ExamCheatingFlag).filter(
            ExamCheatingFlag.exam_submission_id == submission_id
        ).order_by(ExamCheatingFlag.created_at.desc(), ExamCheatingFlag.id.desc()).all()

    def get_submission(self, submission_id: str) -> ExamSubmission:
        submission = self.db.query(ExamSubmission).filter(ExamSubmission.id == submission_id).first()
        if not submission:
            raise NotFoundError("Submission not found")
        return submission

    def _dispatch_notification(self, flag_id: int):
        from ..tasks.monitoring import notify_cheating_flag
        try:
            notify_cheating_flag.delay(flag_id)
        except Exception as e:
            logger.error(f"Failed to schedule notification for cheating flag {flag_id}: {e}")
