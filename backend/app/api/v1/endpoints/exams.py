from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session
from typing import Optional

from ....core.database import get_db
from ....core.exceptions import ValidationError
from ....schemas.exam import SessionStartRequest
from ....services.access_gate import AccessGate, get_execution_type
from ....services.exam_session import ExamSessionService
from ....services.session_lock import SessionLockManager, get_session_lock_manager
from ...deps import get_connection_ip

router = APIRouter()

# fixed paths are declared before /{slug} so they are not captured by it


@router.get("/getCurrentTypeOfExecution")
async def get_current_type_of_execution(
    quizId: Optional[str] = None,
    examId: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """Monitoring strictness: 1 relaxed, 2 medium, 3 strict"""
    exam_id = quizId or examId
    if not exam_id:
        raise ValidationError("Missing quizId parameter")
    return get_execution_type(db, exam_id)


@router.get("/validateToken/{token}")
async def validate_token(token: str, db: Session = Depends(get_db)):
    return AccessGate(db).inspect_token(token)


@router.get("/{slug}")
async def validate_exam(
    slug: str,
    request: Request,
    json_mode: Optional[str] = Query(default=None, alias="json"),
    token: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """
    Admission check for an exam link.

    With ``?json=1`` the reduced ``quiz`` object used by the desktop client is
    returned; otherwise a summary of the exam.
    """
    admission = AccessGate(db).admit(
        slug,
        request.headers,
        connection_ip=get_connection_ip(request),
        invite_token=token,
        require_invite=False,
    )
    if json_mode == "1":
        return {"quiz": admission.quiz_payload()}
    return {"success": True, "exam": admission.exam_payload()}


@router.post("/{slug}/session/start")
async def start_session(
    slug: str,
    body: SessionStartRequest,
    request: Request,
    db: Session = Depends(get_db),
    lock_manager: SessionLockManager = Depends(get_session_lock_manager)
):
    """Admit the student, take the device lock and open (or resume) the submission"""
    return ExamSessionService(db, lock_manager).start(
        slug,
        body,
        request.headers,
        connection_ip=get_connection_ip(request),
    )
