from datetime import datetime
from typing import Any, List, Optional

from pydantic import Field

from .base_schema import CamelModel


class StartAttemptRequest(CamelModel):
    quiz_id: int
    enrollment_id: Optional[int] = None


class AttemptOut(CamelModel):
    id: int
    quiz_id: int
    user_id: int
    enrollment_id: Optional[int] = None
    attempt_number: int
    status: str
    started_at: datetime
    submitted_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    score_percent: Optional[int] = None
    correct_count: Optional[int] = None
    wrong_count: Optional[int] = None


class OptionView(CamelModel):
    id: int
    text: str


class QuestionView(CamelModel):
    id: int
    text: str
    type: str
    explanation: Optional[str] = None
    metadata: Optional[dict] = None
    options: List[OptionView] = []


class QuizView(CamelModel):
    id: int
    course_id: int
    lesson_id: Optional[int] = None
    title: str
    description: Optional[str] = None
    is_final: bool
    passing_score: int
    attempt_limit: int
    time_limit_minutes: int
    questions: List[QuestionView]


class AttemptDetailOut(AttemptOut):
    remaining_seconds: Optional[int] = None
    quiz: QuizView


class AnswerIn(CamelModel):
    question_id: int
    selected_option_ids: List[int] = Field(default_factory=list)
    # NUMERICAL: number; MATCHING: [{"left", "right"}]; CLOZE: ["..."]
    answer_payload: Any = None


class SubmitRequest(CamelModel):
    attempt_id: int
    answers: List[AnswerIn]


class CertificateOut(CamelModel):
    id: int
    uuid: str
    final_score: int
    issued_at: Optional[datetime] = None


class SubmitResponse(CamelModel):
    score_percent: int
    correct_count: int
    total_questions: int
    passed: bool
    certificate: Optional[CertificateOut] = None
