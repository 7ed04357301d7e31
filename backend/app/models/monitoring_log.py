from sqlalchemy import Column, String, DateTime, ForeignKey, Text, Integer, Boolean, JSON
from ..core.database import Base
from ..utils.timezone import utc_now

EVENT_TYPES = (
    "exam_started",
    "exam_submitted",
    "exam_terminated",
    "tab_switched_out",
    "tab_switched_in",
    "screen_locked",
    "screen_unlocked",
    "window_minimized",
    "window_restored",
    "window_blur",
    "window_focus",
    "multi_monitor_detected",
    "vm_detected",
    "copy_attempt",
    "paste_attempt",
    "right_click",
    "keyboard_shortcut",
    "zoom_changed",
    "network_disconnected",
    "network_reconnected",
    "page_reload",
    "browser_devtools_opened",
    "suspicious_activity",
    "violation_threshold_reached",
    "custom_event",
)

EVENT_CATEGORIES = ("security", "violation", "navigation", "system", "network", "input", "custom")

EVENT_SEVERITIES = ("info", "warning", "critical")


class ExamMonitoringLog(Base):
    """
    Append-only monitoring event.

    ``id`` is the server receipt sequence and ``created_at`` the authoritative
    time; ``event_timestamp`` is whatever the client reported.
    """
    __tablename__ = "exam_monitoring_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    exam_submission_id = Column(String(36), ForeignKey("exam_submissions.id", ondelete="CASCADE"), nullable=False, index=True)
    exam_id = Column(String(36), ForeignKey("exams.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(String, nullable=True, index=True)

    event_type = Column(String, nullable=False, index=True)
    event_category = Column(String, default="security")
    severity = Column(String, default="info", index=True)
    event_message = Column(Text)
    event_data = Column(JSON, default=dict)

    event_timestamp = Column(DateTime(timezone=True), default=utc_now)
    duration_ms = Column(Integer, nullable=True)

    question_id = Column(String, nullable=True)
    section_id = Column(String, nullable=True)

    ip_address = Column(String, nullable=True)
    user_agent = Column(Text, nullable=True)
    browser_info = Column(JSON, default=dict)
    screen_resolution = Column(String, nullable=True)

    app_version = Column(String, nullable=True)
    os_platform = Column(String, nullable=True)
    is_vm = Column(Boolean, default=False)
    vm_details = Column(Text, nullable=True)
    monitor_count = Column(Integer, default=1)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    def __repr__(self):
        return f"<ExamMonitoringLog {self.id} {self.event_type} for submission {self.exam_submission_id}>"
