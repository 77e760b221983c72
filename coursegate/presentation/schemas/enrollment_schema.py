from datetime import datetime
from typing import List, Optional

from .base_schema import CamelModel


class EnrollRequest(CamelModel):
    course_id: int


class EnrollResponse(CamelModel):
    message: str
    enrollment_id: int


class LessonProgressOut(CamelModel):
    lesson_id: int
    status: str
    attempts_used: int
    last_attempt_score: Optional[int] = None
    unlocked_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class EnrollmentProgressOut(CamelModel):
    enrollment_id: int
    course_id: int
    status: str
    completed_at: Optional[datetime] = None
    current_lesson_id: Optional[int] = None
    progress_percent: int
    final_quiz_startable: bool
    lessons: List[LessonProgressOut]


class RestartResponse(CamelModel):
    success: bool
    course_id: int
    message: str


class BackfillResponse(CamelModel):
    lesson_id: int
    created: int
