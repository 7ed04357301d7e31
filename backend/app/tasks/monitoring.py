from app.core.celery_app import celery_app
from app.core.database import SessionLocal
from app.models.exam import ExamSubmission
from app.models.cheating_flag import ExamCheatingFlag
from app.services.security_metrics import SecurityMetricsService
from app.utils.timezone import utc_now
import logging

logger = logging.getLogger(__name__)


@celery_app.task(name="notify_cheating_flag")
def notify_cheating_flag(flag_id: int):
    """Record the reviewer notification for a newly opened cheating flag"""
    db = SessionLocal()
    try:
        flag = db.query(ExamCheatingFlag).filter(ExamCheatingFlag.id == flag_id).first()
        if not flag:
            logger.warning(f"Cheating flag {flag_id} not found for notification")
            return {"notified": False, "flag_id": flag_id}

        if flag.teacher_notified:
            return {"notified": False, "flag_id": flag_id}

        # delivery itself (email, in-app) belongs to the notification service
        logger.info(
            f"Cheating flag notification: exam={flag.exam_id} student={flag.student_id} "
            f"severity={flag.flag_severity} reason={flag.flag_reason}"
        )
        flag.teacher_notified = True
        flag.notification_sent_at = utc_now()
        db.commit()
        return {"notified": True, "flag_id": flag_id}
    except Exception as exc:
        db.rollback()
        logger.error(f"Error in notify_cheating_flag: {exc}")
        raise
    finally:
        db.close()


@celery_app.task(name="reconcile_security_metrics")
def reconcile_security_metrics():
    """Recompute metrics for every in-progress submission from source rows"""
    db = SessionLocal()
    refreshed = 0
    failed = 0
    try:
        submission_ids = [
            row.id for row in db.query(ExamSubmission.id).filter(ExamSubmission.status == "in_progress").all()
        ]
        service = SecurityMetricsService(db)
        for submission_id in submission_ids:
            try:
                service.recalculate(submission_id)
                refreshed += 1
            except Exception as e:
                db.rollback()
                failed += 1
                logger.error(f"Failed to reconcile metrics for submission {submission_id}: {e}")
        logger.info(f"Security metrics reconciled: {refreshed} refreshed, {failed} failed")
        return {"refreshed": refreshed, "failed": failed}
    finally:
        db.close()
