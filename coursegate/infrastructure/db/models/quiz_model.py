from sqlalchemy import Column, Integer, String, Text, ForeignKey, Boolean, JSON
from sqlalchemy.orm import relationship
from ..base import Base


class Quiz(Base):
    __tablename__ = "quizzes"

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    lesson_id = Column(Integer, ForeignKey("lessons.id", ondelete="CASCADE"), nullable=True, unique=True)  # null => final quiz
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    is_final = Column(Boolean, default=False, nullable=False)
    passing_score = Column(Integer, nullable=False, default=70)  # 0-100
    attempt_limit = Column(Integer, nullable=False, default=3)
    time_limit_minutes = Column(Integer, nullable=True)  # 0 / null => default

    course = relationship("Course")
    lesson = relationship("Lesson", back_populates="quiz")
    questions = relationship(
        "QuestionModel",
        back_populates="quiz",
        cascade="all, delete-orphan",
        order_by="QuestionModel.order",
    )


class QuestionModel(Base):
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, index=True)
    quiz_id = Column(Integer, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False)
    text = Column(Text, nullable=False)
    explanation = Column(Text, nullable=True)
    type = Column(String(32), nullable=False, default="SINGLE_CHOICE")
    order = Column(Integer, nullable=False, default=1)
    question_metadata = Column("metadata", JSON, nullable=True)  # shape depends on type

    quiz = relationship("Quiz", back_populates="questions")
    options = relationship(
        "OptionModel",
        back_populates="question",
        cascade="all, delete-orphan",
        order_by="OptionModel.order",
    )


class OptionModel(Base):
    __tablename__ = "options"

    id = Column(Integer, primary_key=True, index=True)
    question_id = Column(Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)
    text = Column(String, nullable=False)
    is_correct = Column(Boolean, default=False, nullable=False)
    order = Column(Integer, nullable=False, default=1)

    question = relationship("QuestionModel", back_populates="options")
