from fastapi import APIRouter, Depends
import logging

from ....core.exceptions import InternalError, missing_fields_error
from ....schemas.exam import SessionLockRequest
from ....services.session_lock import SessionLockManager, get_session_lock_manager

logger = logging.getLogger(__name__)

router = APIRouter()


def _require_session_fields(body: SessionLockRequest):
    error = missing_fields_error(
        {"userId": body.user_id, "sessionId": body.session_id},
        ["userId", "sessionId"],
    )
    if error:
        raise error


@router.post("/{exam_id}/session/heartbeat")
async def session_heartbeat(
    exam_id: str,
    body: SessionLockRequest,
    lock_manager: SessionLockManager = Depends(get_session_lock_manager)
):
    """Keep this device's hold on the exam; 403 CONCURRENT_SESSION when another device has it"""
    _require_session_fields(body)
    lock_manager.acquire_or_refresh(exam_id, body.user_id, body.session_id)
    if not lock_manager.enabled:
        return {"success": True, "message": "Redis not configured"}
    return {"success": True}


@router.post("/{exam_id}/session/release")
async def session_release(
    exam_id: str,
    body: SessionLockRequest,
    lock_manager: SessionLockManager = Depends(get_session_lock_manager)
):
    _require_session_fields(body)
    try:
        released = lock_manager.release(exam_id, body.user_id, body.session_id)
    except InternalError as e:
        # release is best effort; the TTL frees the lock anyway
        logger.error(f"Session release failed for exam {exam_id}: {e.details or e.message}")
        return {"success": True, "released": False}
    if not lock_manager.enabled:
        return {"success": True, "message": "Redis not configured"}
    return {"success": True, "released": released}
