from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import Optional, Dict, Any


class ClientPayload(BaseModel):
    """Exam-client bodies are camelCase; every field is optional so the
    services can report all missing required fields at once."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        extra = "ignore"


class MonitoringEventCreate(ClientPayload):
    submission_id: Optional[str] = None
    exam_id: Optional[str] = None
    student_id: Optional[str] = None
    event_type: Optional[str] = None
    event_category: Optional[str] = None
    severity: Optional[str] = None
    event_message: Optional[str] = None
    event_data: Optional[Dict[str, Any]] = None
    event_timestamp: Optional[Any] = None
    duration_ms: Optional[int] = None
    question_id: Optional[str] = None
    section_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    browser_info: Optional[Dict[str, Any]] = None
    screen_resolution: Optional[str] = None
    app_version: Optional[str] = None
    os_platform: Optional[str] = None
    is_vm: Optional[bool] = None
    vm_details: Optional[str] = None
    monitor_count: Optional[int] = None


class StrictModeViolationCreate(ClientPayload):
    user_id: Optional[str] = None
    quiz_id: Optional[str] = None
    violation_type: Optional[Any] = None
    details: Optional[Any] = None
    timestamp: Optional[Any] = None
    severity: Optional[Any] = None


class ViolationCreate(ClientPayload):
    submission_id: Optional[str] = None
    exam_id: Optional[str] = None
    student_id: Optional[str] = None
    violation_type: Optional[str] = None
    violation_severity: Optional[str] = None
    violation_message: Optional[str] = None
    violation_details: Optional[Dict[str, Any]] = None
    question_id: Optional[str] = None
    action_taken: Optional[str] = None
    auto_detected: Optional[bool] = None
    monitoring_log_id: Optional[int] = None


class CheatingFlagCreate(ClientPayload):
    submission_id: Optional[str] = None
    exam_id: Optional[str] = None
    student_id: Optional[str] = None
    reason: Optional[str] = None
    severity: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    violations_count: Optional[int] = None
    auto_flagged: Optional[bool] = None
    notify_teacher: Optional[bool] = None


class ViolationReview(ClientPayload):
    is_justified: Optional[bool] = None
    review_notes: Optional[str] = None


class MonitoringLogOut(BaseModel):
    id: int
    exam_submission_id: str
    exam_id: str
    student_id: Optional[str] = None
    event_type: str
    event_category: Optional[str] = None
    severity: Optional[str] = None
    event_message: Optional[str] = None
    event_data: Optional[Dict[str, Any]] = None
    event_timestamp: Optional[datetime] = None
    duration_ms: Optional[int] = None
    question_id: Optional[str] = None
    section_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    screen_resolution: Optional[str] = None
    app_version: Optional[str] = None
    os_platform: Optional[str] = None
    is_vm: Optional[bool] = None
    monitor_count: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ViolationOut(BaseModel):
    id: int
    exam_submission_id: str
    exam_id: str
    student_id: Optional[str] = None
    violation_type: str
    violation_severity: Optional[str] = None
    violation_message: str
    violation_details: Optional[Dict[str, Any]] = None
    violation_timestamp: Optional[datetime] = None
    action_taken: Optional[str] = None
    auto_detected: Optional[bool] = None
    monitoring_log_id: Optional[int] = None
    is_reviewed: bool = False
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    is_justified: Optional[bool] = None
    created_at: datetime

    class Config:
        from_attributes = True


class CheatingFlagOut(BaseModel):
    id: int
    exam_submission_id: str
    exam_id: str
    student_id: Optional[str] = None
    flag_reason: str
    flag_severity: Optional[str] = None
    flag_details: Optional[Dict[str, Any]] = None
    flag_status: str
    violations_count: Optional[int] = None
    auto_flagged: Optional[bool] = None
    requires_manual_review: Optional[bool] = None
    teacher_notified: Optional[bool] = None
    created_at: datetime

    class Config:
        from_attributes = True


class SecurityMetricsOut(BaseModel):
    total_tab_switches: int = 0
    total_screen_locks: int = 0
    total_window_blur_events: int = 0
    total_window_minimizes: int = 0
    copy_attempts: int = 0
    paste_attempts: int = 0
    zoom_changes: int = 0
    network_disconnections: int = 0
    is_vm_detected: bool = False
    multi_monitor_detected: bool = False
    monitor_count_max: int = 1
    violation_count: int = 0
    risk_score: float = 0.0
    risk_level: str = "low"
    is_flagged_for_review: bool = False
    first_activity_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None

    class Config:
        from_attributes = True
