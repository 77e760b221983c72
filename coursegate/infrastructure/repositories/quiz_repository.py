from typing import Optional
import logging
from sqlalchemy.orm import Session, selectinload
from ..db.models import Quiz, QuestionModel

logger = logging.getLogger(__name__)


class QuizRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_quiz(self, quiz_id: int) -> Optional[Quiz]:
        return self.db.query(Quiz).filter(Quiz.id == quiz_id).first()

    def get_quiz_with_questions(self, quiz_id: int) -> Optional[Quiz]:
        """
        Loads a quiz together with its ordered questions and their options.
        """
        quiz = (
            self.db.query(Quiz)
            .options(selectinload(Quiz.questions).selectinload(QuestionModel.options))
            .filter(Quiz.id == quiz_id)
            .first()
        )
        if quiz:
            logger.debug(f"Loaded quiz_id={quiz_id} with {len(quiz.questions)} questions")
        return quiz

    def get_course_quiz_ids(self, course_id: int) -> list[int]:
        rows = self.db.query(Quiz.id).filter(Quiz.course_id == course_id).all()
        return [row[0] for row in rows]
