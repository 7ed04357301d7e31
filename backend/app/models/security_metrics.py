from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Float, Boolean
from ..core.database import Base
from ..utils.timezone import utc_now


class ExamSecurityMetrics(Base):
    """Aggregated security statistics, one row per submission"""
    __tablename__ = "exam_security_metrics"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    exam_submission_id = Column(String(36), ForeignKey("exam_submissions.id", ondelete="CASCADE"), nullable=False, unique=True)
    exam_id = Column(String(36), ForeignKey("exams.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(String, nullable=True)

    total_tab_switches = Column(Integer, default=0, nullable=False)
    total_screen_locks = Column(Integer, default=0, nullable=False)
    total_window_blur_events = Column(Integer, default=0, nullable=False)
    total_window_minimizes = Column(Integer, default=0, nullable=False)
    copy_attempts = Column(Integer, default=0, nullable=False)
    paste_attempts = Column(Integer, default=0, nullable=False)
    zoom_changes = Column(Integer, default=0, nullable=False)
    network_disconnections = Column(Integer, default=0, nullable=False)

    is_vm_detected = Column(Boolean, default=False, nullable=False)
    multi_monitor_detected = Column(Boolean, default=False, nullable=False)
    monitor_count_max = Column(Integer, default=1, nullable=False)

    violation_count = Column(Integer, default=0, nullable=False)
    risk_score = Column(Float, default=0.0, nullable=False)
    risk_level = Column(String, default="low", nullable=False)
    is_flagged_for_review = Column(Boolean, default=False, nullable=False)

    first_activity_at = Column(DateTime(timezone=True), nullable=True)
    last_activity_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    def __repr__(self):
        return f"<ExamSecurityMetrics {self.exam_submission_id} risk={self.risk_score} {self.risk_level}>"
