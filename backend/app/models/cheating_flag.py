from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON, Boolean, Index, text
from ..core.database import Base
from ..utils.timezone import utc_now

OPEN_FLAG_STATUSES = ("pending", "under_review")
FLAG_STATUSES = OPEN_FLAG_STATUSES + ("reviewed", "dismissed")

_OPEN_FLAG_CLAUSE = text("flag_status IN ('pending', 'under_review')")


class ExamCheatingFlag(Base):
    __tablename__ = "exam_cheating_flags"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    exam_submission_id = Column(String(36), ForeignKey("exam_submissions.id", ondelete="CASCADE"), nullable=False, index=True)
    exam_id = Column(String(36), ForeignKey("exams.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(String, nullable=True)

    flag_reason = Column(Text, nullable=False)
    flag_severity = Column(String, default="high")                   # medium | high | critical
    flag_details = Column(JSON, default=dict)
    flag_status = Column(String, default="pending", nullable=False)
    violations_count = Column(Integer, default=0)
    auto_flagged = Column(Boolean, default=True)
    requires_manual_review = Column(Boolean, default=True)

    teacher_notified = Column(Boolean, default=False)
    notification_sent_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    __table_args__ = (
        # at most one open flag per submission
        Index(
            "uq_cheating_flags_open_submission",
            "exam_submission_id",
            unique=True,
            postgresql_where=_OPEN_FLAG_CLAUSE,
            sqlite_where=_OPEN_FLAG_CLAUSE,
        ),
    )

    def __repr__(self):
        return f"<ExamCheatingFlag {self.id} {self.flag_status} for submission {self.exam_submission_id}>"
