from .user_model import UserModel
from .course_model import Course, CourseModule, Lesson
from .quiz_model import Quiz, QuestionModel, OptionModel
from .attempt_model import QuizAttempt, AttemptAnswer
from .progress_model import Enrollment, LessonProgress
from .certificate_model import Certificate, CertificateOutbox
from .statuses import (
    Role,
    AttemptStatus,
    ProgressStatus,
    EnrollmentStatus,
    OutboxStatus,
    QuestionType,
)

__all__ = [
    "UserModel",
    "Course",
    "CourseModule",
    "Lesson",
    "Quiz",
    "QuestionModel",
    "OptionModel",
    "QuizAttempt",
    "AttemptAnswer",
    "Enrollment",
    "LessonProgress",
    "Certificate",
    "CertificateOutbox",
    "Role",
    "AttemptStatus",
    "ProgressStatus",
    "EnrollmentStatus",
    "OutboxStatus",
    "QuestionType",
]
