from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Optional

from ....core.database import get_db
from ....schemas.monitoring import ViolationOut, ViolationReview
from ....services.violation_service import ViolationService
from ...deps import get_reviewer_id

router = APIRouter()


@router.get("/{exam_id}")
async def list_exam_violations(
    exam_id: str,
    reviewed: Optional[bool] = None,
    db: Session = Depends(get_db)
):
    """Violations of an exam, newest first; ``reviewed`` filters by review state"""
    violations = ViolationService(db).list_exam_violations(exam_id, reviewed)
    return {
        "success": True,
        "violations": [ViolationOut.model_validate(v).model_dump(mode="json") for v in violations],
        "count": len(violations),
    }


@router.post("/review/{violation_id}")
async def review_violation(
    violation_id: int,
    review: ViolationReview,
    reviewer_id: str = Depends(get_reviewer_id),
    db: Session = Depends(get_db)
):
    violation = ViolationService(db).review_violation(violation_id, reviewer_id, review)
    return {
        "success": True,
        "violation": ViolationOut.model_validate(violation).model_dump(mode="json"),
        "message": "Violation reviewed",
    }
