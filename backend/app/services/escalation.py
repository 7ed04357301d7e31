"""
Escalation policy over a submission's cumulative violation count.

``decide`` is pure and level-triggered: it is re-evaluated after every new
violation and only looks at the current total. ``EscalationEngine`` applies
the side effects of a decision against the store.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional
import logging

from sqlalchemy.orm import Session

from ..core.config import settings, Settings
from ..models.exam import ExamSubmission
from ..models.monitoring_log import ExamMonitoringLog
from ..utils.timezone import utc_now

logger = logging.getLogger(__name__)


class EscalationAction(str, Enum):
    CONTINUE = "continue"
    REVIEW_REQUIRED = "review_required"
    TERMINATE = "terminate"


ACTION_MESSAGES = {
    EscalationAction.CONTINUE: "Violation logged successfully.",
    EscalationAction.REVIEW_REQUIRED: "Multiple violations detected. Flagged for review.",
    EscalationAction.TERMINATE: "Critical violation threshold reached. Session should be terminated.",
}

RISK_LEVELS = ("low", "medium", "high", "critical")


@dataclass(frozen=True)
class EscalationThresholds:
    review_flag: int = 5
    terminate: int = 10
    points_per_violation: float = 15.0
    score_cap: float = 100.0
    level_medium: int = 5
    level_high: int = 7
    level_critical: int = 10

    def __post_init__(self):
        if self.terminate < self.review_flag:
            raise ValueError("terminate threshold must not be below the review threshold")
        if not (self.level_medium <= self.level_high <= self.level_critical):
            raise ValueError("risk level thresholds must be non-decreasing")

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "EscalationThresholds":
        config = config or settings
        return cls(
            review_flag=config.review_flag_threshold,
            terminate=config.terminate_threshold,
            points_per_violation=config.risk_points_per_violation,
            score_cap=config.risk_score_cap,
            level_medium=config.risk_level_medium_threshold,
            level_high=config.risk_level_high_threshold,
            level_critical=config.risk_level_critical_threshold,
        )


def decide(violation_count: int, thresholds: EscalationThresholds) -> EscalationAction:
    if violation_count >= thresholds.terminate:
        return EscalationAction.TERMINATE
    if violation_count >= thresholds.review_flag:
        return EscalationAction.REVIEW_REQUIRED
    return EscalationAction.CONTINUE


def risk_score_for(violation_count: int, thresholds: EscalationThresholds) -> float:
    return float(min(thresholds.score_cap, max(violation_count, 0) * thresholds.points_per_violation))


def risk_level_for(violation_count: int, thresholds: EscalationThresholds) -> str:
    if violation_count >= thresholds.level_critical:
        return "critical"
    if violation_count >= thresholds.level_high:
        return "high"
    if violation_count >= thresholds.level_medium:
        return "medium"
    return "low"


@dataclass
class EscalationOutcome:
    action: EscalationAction
    violation_count: int
    flag_id: Optional[int] = None
    flag_created: bool = False
    errors: List[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        return ACTION_MESSAGES[self.action]


class EscalationEngine:
    def __init__(self, db: Session, thresholds: Optional[EscalationThresholds] = None):
        self.db = db
        self.thresholds = thresholds or EscalationThresholds.from_settings()

    def escalate(self, submission: ExamSubmission, violation_count: int) -> EscalationOutcome:
        """
        Apply the decision for ``violation_count``.

        The audit rows are already committed when this runs, so failures here
        are collected into ``outcome.errors`` instead of being raised.
        """
        from .security_metrics import SecurityMetricsService
        from .cheating_flags import CheatingFlagService

        outcome = EscalationOutcome(action=decide(violation_count, self.thresholds), violation_count=violation_count)

        try:
            SecurityMetricsService(self.db, self.thresholds).recalculate(submission.id)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error recalculating security metrics for {submission.id}: {e}", exc_info=True)
            outcome.errors.append("Failed to update security metrics")

        if outcome.action is not EscalationAction.TERMINATE:
            return outcome

        try:
            flag, created = CheatingFlagService(self.db).ensure_open_flag(
                submission,
                reason=f"Excessive violations detected: {violation_count} total violations",
                severity="critical",
                violations_count=violation_count,
                auto_flagged=True,
                details={"violationCount": violation_count, "threshold": self.thresholds.terminate},
            )
            outcome.flag_id = flag.id
            outcome.flag_created = created
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating cheating flag for {submission.id}: {e}", exc_info=True)
            outcome.errors.append("Failed to create cheating flag")

        try:
            self._terminate_submission(submission, violation_count)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error terminating submission {submission.id}: {e}", exc_info=True)
            outcome.errors.append("Failed to mark submission as terminated")

        logger.warning(
            f"Auto-terminate triggered for user {submission.student_id} in exam {submission.exam_id}: "
            f"{violation_count} violations"
        )
        return outcome

    def _terminate_submission(self, submission: ExamSubmission, violation_count: int):
        if submission.status == "terminated":
            return
        now = utc_now()
        submission.status = "terminated"
        submission.terminated_at = now
        self.db.add(ExamMonitoringLog(
            exam_submission_id=submission.id,
            exam_id=submission.exam_id,
            student_id=submission.student_id,
            event_type="violation_threshold_reached",
            event_category="violation",
            severity="critical",
            event_message=f"Violation threshold reached: {violation_count} violations",
            event_data={"violationCount": violation_count, "threshold": self.thresholds.terminate},
            event_timestamp=now,
            created_at=now,
        ))
        self.db.commit()
