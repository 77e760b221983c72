from sqlalchemy import Column, Integer, ForeignKey, DateTime, String, Text, UniqueConstraint
from coursegate.clock import utcnow
from ..base import Base


class Certificate(Base):
    __tablename__ = "certificates"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(36), nullable=False, unique=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    quiz_attempt_id = Column(Integer, ForeignKey("quiz_attempts.id", ondelete="SET NULL"), nullable=True)
    final_score = Column(Integer, nullable=False)
    total_lessons = Column(Integer, nullable=False)
    total_quizzes_passed = Column(Integer, nullable=False)
    issued_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_certificate_user_course"),
    )


# Written in the grading transaction, processed after commit.
class CertificateOutbox(Base):
    __tablename__ = "certificate_outbox"

    id = Column(Integer, primary_key=True, index=True)
    attempt_id = Column(Integer, ForeignKey("quiz_attempts.id", ondelete="CASCADE"), nullable=False, unique=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(16), nullable=False, default="PENDING")  # PENDING / DONE / FAILED
    tries = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    processed_at = Column(DateTime, nullable=True)
