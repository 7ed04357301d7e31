"""
Admission checks run before an exam client may validate or start a session.

Checks run in a fixed order and the first failure wins: exam exists, exam is
published, invite token, IP allow-list, time window. Admission is fail-closed;
the strictness lookup used by the client is fail-open (relaxed mode).
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Mapping, Optional
import logging

from sqlalchemy import update, or_
from sqlalchemy.orm import Session

from ..core.cache import cache
from ..core.config import settings
from ..core.exceptions import NotFoundError, ForbiddenError
from ..models.exam import Exam, ExamInvite
from ..utils.client_ip import resolve_client_ip, parse_allow_list, ip_allowed
from ..utils.timezone import utc_now, as_utc

logger = logging.getLogger(__name__)

RELAXED = 1
STRICT_LEVELS = (1, 2, 3)

INVALID_TOKEN_MESSAGE = "Invalid or expired token"


@dataclass
class AdmissionResult:
    exam: Exam
    client_ip: Optional[str] = None
    invite: Optional[ExamInvite] = None

    @property
    def strict_level(self) -> int:
        return normalize_strict_level(self.exam.strict_level)

    def quiz_payload(self) -> Dict[str, Any]:
        """Reduced exam description for non-browser clients"""
        exam = self.exam
        return {
            "id": exam.id,
            "title": exam.title,
            "slug": exam.slug,
            "duration": (exam.duration_minutes or 0) * 60,
            "questions": exam.question_count or 0,
            "totalMarks": exam.total_marks,
            "startTime": exam.start_time.isoformat() if exam.start_time else None,
            "endTime": exam.end_time.isoformat() if exam.end_time else None,
            "requiresInvite": bool(exam.require_invite_token),
            "strictLevel": self.strict_level,
        }

    def exam_payload(self) -> Dict[str, Any]:
        exam = self.exam
        return {
            "id": exam.id,
            "title": exam.title,
            "slug": exam.slug,
            "description": exam.description,
            "duration_minutes": exam.duration_minutes,
            "total_marks": exam.total_marks,
            "question_count": exam.question_count or 0,
            "strict_level": self.strict_level,
        }


def normalize_strict_level(value: Any) -> int:
    try:
        level = int(value)
    except (TypeError, ValueError):
        return RELAXED
    return level if level in STRICT_LEVELS else RELAXED


class AccessGate:
    def __init__(self, db: Session):
        self.db = db

    def admit(
        self,
        slug: str,
        headers: Mapping[str, str],
        connection_ip: Optional[str] = None,
        invite_token: Optional[str] = None,
        require_invite: bool = True,
        enforce_time_window: bool = False,
        now: Optional[datetime] = None,
    ) -> AdmissionResult:
        """
        Run the admission checks for ``slug``.

        ``require_invite=False`` lets validation requests through without a
        token (the response tells the client one is needed); a supplied token
        is always checked.
        """
        now = now or utc_now()

        exam = self.db.query(Exam).filter(Exam.slug == slug).first()
        if not exam:
            raise NotFoundError("Test not found")

        if not exam.is_published:
            raise ForbiddenError("Test not available")

        result = AdmissionResult(exam=exam)

        if exam.require_invite_token and (invite_token or require_invite):
            result.invite = self.check_invite(exam, invite_token, now)

        if exam.allowed_ip:
            result.client_ip = self.check_ip(exam, headers, connection_ip)

        if enforce_time_window:
            self.check_time_window(exam, now)

        return result

    def find_invite(self, token: Optional[str]) -> Optional[ExamInvite]:
        if not token:
            return None
        return self.db.query(ExamInvite).filter(ExamInvite.token == token).first()

    def check_invite(self, exam: Exam, token: Optional[str], now: Optional[datetime] = None) -> ExamInvite:
        invite = self.find_invite(token)
        if not invite or invite.exam_id != exam.id:
            raise ForbiddenError(INVALID_TOKEN_MESSAGE)
        self.validate_invite(invite, now)
        return invite

    def validate_invite(self, invite: ExamInvite, now: Optional[datetime] = None) -> ExamInvite:
        now = now or utc_now()

        if not invite.is_active or invite.is_expired:
            raise ForbiddenError(INVALID_TOKEN_MESSAGE)

        valid_from = as_utc(invite.valid_from) if invite.valid_from else None
        valid_until = as_utc(invite.valid_until)
        if (valid_from and now < valid_from) or now > valid_until:
            if now > valid_until:
                invite.is_expired = True
                self.db.commit()
            raise ForbiddenError(INVALID_TOKEN_MESSAGE)

        if invite.token_type != "reusable" and (invite.use_count or 0) >= (invite.use_limit or 0):
            raise ForbiddenError("Token usage limit exceeded")

        return invite

    def record_invite_use(self, invite: ExamInvite, client_ip: Optional[str] = None, now: Optional[datetime] = None):
        """Atomically consume one use; the conditional UPDATE loses cleanly to a racing consumer"""
        now = now or utc_now()
        stmt = (
            update(ExamInvite)
            .where(ExamInvite.id == invite.id)
            .where(or_(ExamInvite.token_type == "reusable", ExamInvite.use_count < ExamInvite.use_limit))
            .values(
                use_count=ExamInvite.use_count + 1,
                last_used_at=now,
                last_used_ip=client_ip,
            )
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        if result.rowcount == 0:
            self.db.rollback()
            raise ForbiddenError("Token usage limit exceeded")
        if invite.first_used_at is None:
            invite.first_used_at = now
        self.db.commit()
        self.db.refresh(invite)

    def inspect_token(self, token: str) -> Dict[str, Any]:
        """Token details for the exam client; 404 unknown, 403 unusable"""
        invite = self.find_invite(token)
        if not invite:
            logger.error(f"Invite not found: {token}")
            raise NotFoundError(INVALID_TOKEN_MESSAGE)
        self.validate_invite(invite)

        reusable = invite.token_type == "reusable"
        return {
            "valid": True,
            "testId": invite.exam_id,
            "examSlug": invite.exam.slug if invite.exam else None,
            "examTitle": invite.exam.title if invite.exam else None,
            "studentEmail": invite.student_email,
            "validFrom": invite.valid_from.isoformat() if invite.valid_from else None,
            "expiresAt": invite.valid_until.isoformat() if invite.valid_until else None,
            "usesRemaining": None if reusable else (invite.use_limit or 0) - (invite.use_count or 0),
        }

    def check_ip(self, exam: Exam, headers: Mapping[str, str], connection_ip: Optional[str]) -> str:
        client_ip = resolve_client_ip(headers, connection_ip, development=settings.is_development)
        allowed = parse_allow_list(exam.allowed_ip)
        if not ip_allowed(client_ip, allowed):
            logger.warning(
                f"IP restriction failed for exam {exam.slug}. Allowed: {', '.join(allowed)}, Got: {client_ip}"
            )
            raise ForbiddenError(
                f"Access Denied: Your IP ({client_ip}) is not authorized. "
                f"You must be connected to the specific exam Wifi network."
            )
        return client_ip

    def check_time_window(self, exam: Exam, now: datetime):
        if exam.start_time and now < as_utc(exam.start_time):
            raise ForbiddenError("Exam has not started yet")
        if exam.end_time and now > as_utc(exam.end_time):
            raise ForbiddenError("Exam has ended")


def get_execution_type(db: Session, exam_id: str) -> Dict[str, Any]:
    """
    Monitoring strictness for the exam client.

    Any lookup failure degrades to relaxed mode (``{"type": 1}``) so a
    transient read error never locks a student out.
    """
    cache_key = f"exam:execution_type:{exam_id}"
    cached = cache.get(cache_key)
    if cached:
        return cached

    try:
        exam = db.query(Exam).filter(Exam.id == exam_id).first()
    except Exception as e:
        db.rollback()
        logger.error(f"Error getting execution type: {e}")
        return {"type": RELAXED}

    if not exam:
        logger.error(f"Exam not found for execution type: {exam_id}")
        return {"type": RELAXED}

    result = {
        "type": normalize_strict_level(exam.strict_level),
        "proctoring": bool(exam.proctoring_enabled),
        "lockScreen": bool(exam.lock_screen),
        "preventTabSwitching": bool(exam.prevent_tab_switching),
    }
    cache.set(cache_key, result, ttl=settings.execution_type_cache_ttl)
    return result
