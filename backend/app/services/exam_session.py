from typing import Any, Dict, Mapping, Optional
import logging

from sqlalchemy.orm import Session

from ..core.exceptions import ExamIntegrityError, ForbiddenError, missing_fields_error
from ..models.exam import Exam, ExamSubmission
from ..schemas.exam import SessionStartRequest
from ..utils.timezone import utc_now, as_utc
from .access_gate import AccessGate
from .event_ingestion import EventIngestionService
from .session_lock import SessionLockManager, get_session_lock_manager

logger = logging.getLogger(__name__)

FINISHED_STATUSES = ("submitted", "graded")


class ExamSessionService:
    """Session start and liveness for the exam client"""

    def __init__(self, db: Session, lock_manager: Optional[SessionLockManager] = None):
        self.db = db
        self._lock_manager = lock_manager
        self.gate = AccessGate(db)

    @property
    def lock_manager(self) -> SessionLockManager:
        # only session start needs the device lock
        if self._lock_manager is None:
            self._lock_manager = get_session_lock_manager()
        return self._lock_manager

    def start(
        self,
        slug: str,
        request: SessionStartRequest,
        headers: Mapping[str, str],
        connection_ip: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Admit the student and bind the exam to ``session_id``.

        Order: admission gate (with time window) -> session lock -> resume the
        in-progress submission, or consume one invite use and open a new
        attempt. The lock is released again if anything after it fails.
        """
        error = missing_fields_error(
            {"userId": request.user_id, "sessionId": request.session_id},
            ["userId", "sessionId"],
        )
        if error:
            raise error

        admission = self.gate.admit(
            slug,
            headers,
            connection_ip=connection_ip,
            invite_token=request.invite_token,
            require_invite=True,
            enforce_time_window=True,
        )
        exam = admission.exam

        self.lock_manager.acquire_or_refresh(exam.id, request.user_id, request.session_id)
        try:
            submission, resumed = self._open_submission(exam, request.user_id, admission)
        except ExamIntegrityError:
            self.lock_manager.release(exam.id, request.user_id, request.session_id)
            raise
        except Exception:
            self.db.rollback()
            self.lock_manager.release(exam.id, request.user_id, request.session_id)
            raise

        logger.info(
            f"Exam session {'resumed' if resumed else 'started'}: exam={exam.id} "
            f"user={request.user_id} submission={submission.id}"
        )
        return {
            "success": True,
            "submissionId": submission.id,
            "resumed": resumed,
            "strictLevel": admission.strict_level,
            "quiz": admission.quiz_payload(),
        }

    def _open_submission(self, exam: Exam, user_id: str, admission):
        latest = self.db.query(ExamSubmission).filter(
            ExamSubmission.exam_id == exam.id,
            ExamSubmission.student_id == user_id,
        ).order_by(ExamSubmission.created_at.desc(), ExamSubmission.attempt_number.desc()).first()

        if latest and latest.status == "in_progress":
            return latest, True
        if latest and latest.status == "terminated":
            raise ForbiddenError("Exam session was terminated")
        if latest and latest.status in FINISHED_STATUSES:
            raise ForbiddenError("This exam has already been submitted")

        if admission.invite is not None:
            self.gate.record_invite_use(admission.invite, client_ip=admission.client_ip)

        now = utc_now()
        submission = ExamSubmission(
            exam_id=exam.id,
            student_id=user_id,
            attempt_number=(latest.attempt_number or 0) + 1 if latest else 1,
            status="in_progress",
            started_at=now,
            created_at=now,
            updated_at=now,
        )
        self.db.add(submission)
        self.db.commit()
        self.db.refresh(submission)

        EventIngestionService(self.db).ingest({
            "submission_id": submission.id,
            "exam_id": exam.id,
            "student_id": user_id,
            "event_type": "exam_started",
            "event_category": "system",
            "severity": "info",
            "event_message": "Exam started",
            "event_data": {"attemptNumber": submission.attempt_number},
            "ip_address": admission.client_ip,
        })
        return submission, False

    def monitor_heartbeat(self, quiz_id: Optional[str], user_id: Optional[str]) -> Dict[str, Any]:
        """Liveness ping; tells the client whether the exam should keep running"""
        error = missing_fields_error({"quizId": quiz_id, "userId": user_id}, ["quizId", "userId"])
        if error:
            raise error

        now = utc_now()
        server_time = int(now.timestamp() * 1000)

        exam = self.db.query(Exam).filter(Exam.id == quiz_id).first()
        if not exam:
            return {"status": "ok", "serverTime": server_time, "shouldContinue": False, "message": "Exam not found"}

        exam_ended = bool(exam.end_time and as_utc(exam.end_time) <= now)
        should_continue = bool(exam.is_active) and not exam_ended

        submission = self.db.query(ExamSubmission).filter(
            ExamSubmission.exam_id == quiz_id,
            ExamSubmission.student_id == user_id,
        ).order_by(ExamSubmission.created_at.desc()).first()

        if submission and submission.status == "in_progress":
            submission.updated_at = now
            self.db.commit()
        elif submission:
            should_continue = False

        return {
            "status": "ok",
            "serverTime": server_time,
            "shouldContinue": should_continue,
            "examActive": bool(exam.is_active),
            "examEnded": exam_ended,
            "message": "Session active" if should_continue else "Session should end",
        }
