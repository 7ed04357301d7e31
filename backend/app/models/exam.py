from sqlalchemy import Column, String, DateTime, ForeignKey, Float, Text, Boolean, Integer
from sqlalchemy.orm import relationship
import uuid
from ..core.database import Base
from ..utils.timezone import utc_now


def _uuid() -> str:
    return str(uuid.uuid4())


class Exam(Base):
    """Exam configuration as read by the integrity engine; authored elsewhere"""
    __tablename__ = "exams"

    id = Column(String(36), primary_key=True, default=_uuid)
    slug = Column(String, unique=True, index=True, nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    duration_minutes = Column(Integer, default=60)
    total_marks = Column(Float, default=0)
    question_count = Column(Integer, default=0)

    is_published = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    start_time = Column(DateTime(timezone=True), nullable=True)
    end_time = Column(DateTime(timezone=True), nullable=True)

    # 1 = relaxed, 2 = medium, 3 = strict
    strict_level = Column(Integer, default=1)
    proctoring_enabled = Column(Boolean, default=False)
    lock_screen = Column(Boolean, default=False)
    prevent_tab_switching = Column(Boolean, default=False)

    require_invite_token = Column(Boolean, default=False)
    allowed_ip = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now)

    invites = relationship("ExamInvite", back_populates="exam")
    submissions = relationship("ExamSubmission", back_populates="exam")


class ExamInvite(Base):
    __tablename__ = "exam_invites"

    id = Column(String(36), primary_key=True, default=_uuid)
    exam_id = Column(String(36), ForeignKey("exams.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String, unique=True, index=True, nullable=False)
    token_type = Column(String, default="single_use")                 # single_use | reusable | limited
    use_limit = Column(Integer, default=1)
    use_count = Column(Integer, default=0)
    student_email = Column(String, nullable=True)

    valid_from = Column(DateTime(timezone=True), default=utc_now)
    valid_until = Column(DateTime(timezone=True), nullable=False)
    is_active = Column(Boolean, default=True)
    is_expired = Column(Boolean, default=False)

    first_used_at = Column(DateTime(timezone=True), nullable=True)
    last_used_at = Column(DateTime(timezone=True), nullable=True)
    last_used_ip = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)

    exam = relationship("Exam", back_populates="invites")


class ExamSubmission(Base):
    """One student's attempt at an exam"""
    __tablename__ = "exam_submissions"

    id = Column(String(36), primary_key=True, default=_uuid)
    exam_id = Column(String(36), ForeignKey("exams.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(String, nullable=False, index=True)
    attempt_number = Column(Integer, default=1)
    status = Column(String, default="in_progress", index=True)       # in_progress | submitted | graded | terminated
    score = Column(Float, nullable=True)

    started_at = Column(DateTime(timezone=True), default=utc_now)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    terminated_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    exam = relationship("Exam", back_populates="submissions")

    def __repr__(self):
        return f"<ExamSubmission {self.id} exam={self.exam_id} student={self.student_id} {self.status}>"
