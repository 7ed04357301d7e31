from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON, Boolean
from ..core.database import Base
from ..utils.timezone import utc_now


class ExamViolation(Base):
    __tablename__ = "exam_violations"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    exam_submission_id = Column(String(36), ForeignKey("exam_submissions.id", ondelete="CASCADE"), nullable=False, index=True)
    exam_id = Column(String(36), ForeignKey("exams.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(String, nullable=True, index=True)

    violation_type = Column(String, nullable=False, index=True)
    violation_severity = Column(String, default="warning")           # info | warning | critical
    violation_message = Column(Text, nullable=False)
    violation_details = Column(JSON, default=dict)
    violation_timestamp = Column(DateTime(timezone=True), default=utc_now)
    question_id = Column(String, nullable=True)

    action_taken = Column(String, nullable=True)
    auto_detected = Column(Boolean, default=True)
    monitoring_log_id = Column(Integer, ForeignKey("exam_monitoring_logs.id", ondelete="SET NULL"), nullable=True)

    is_reviewed = Column(Boolean, default=False, index=True)
    reviewed_by = Column(String, nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    review_notes = Column(Text, nullable=True)
    is_justified = Column(Boolean, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    def __repr__(self):
        return f"<ExamViolation {self.violation_type} for submission {self.exam_submission_id}>"
