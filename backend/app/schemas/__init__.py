from .monitoring import (
    MonitoringEventCreate,
    StrictModeViolationCreate,
    ViolationCreate,
    CheatingFlagCreate,
    ViolationReview,
    MonitoringLogOut,
    ViolationOut,
    CheatingFlagOut,
    SecurityMetricsOut,
)
from .exam import SessionLockRequest, SessionStartRequest

__all__ = [
    "MonitoringEventCreate",
    "StrictModeViolationCreate",
    "ViolationCreate",
    "CheatingFlagCreate",
    "ViolationReview",
    "MonitoringLogOut",
    "ViolationOut",
    "CheatingFlagOut",
    "SecurityMetricsOut",
    "SessionLockRequest",
    "SessionStartRequest",
]
