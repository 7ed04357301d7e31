from ..core.database import Base
from .exam import Exam, ExamInvite, ExamSubmission
from .monitoring_log import ExamMonitoringLog
from .violation import ExamViolation
from .security_metrics import ExamSecurityMetrics
from .cheating_flag import ExamCheatingFlag

__all__ = [
    "Base",
    "Exam",
    "ExamInvite",
    "ExamSubmission",
    "ExamMonitoringLog",
    "ExamViolation",
    "ExamSecurityMetrics",
    "ExamCheatingFlag",
]
