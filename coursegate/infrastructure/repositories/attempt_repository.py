from datetime import datetime
from typing import Dict, List, Optional
import logging
from sqlalchemy import func
from sqlalchemy.orm import Session
from ..db.models import QuizAttempt, AttemptAnswer, AttemptStatus

logger = logging.getLogger(__name__)


class AttemptRepository:
    """
    Data access for quiz attempts and their answers.

    Nothing here commits; the calling service owns the transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_attempt(self, attempt_id: int) -> Optional[QuizAttempt]:
        return self.db.query(QuizAttempt).filter(QuizAttempt.id == attempt_id).first()

    def get_in_progress(self, quiz_id: int, user_id: int) -> Optional[QuizAttempt]:
        return (
            self.db.query(QuizAttempt)
            .filter(
                QuizAttempt.quiz_id == quiz_id,
                QuizAttempt.user_id == user_id,
                QuizAttempt.status == AttemptStatus.IN_PROGRESS,
            )
            .order_by(QuizAttempt.started_at.desc())
            .first()
        )

    def has_passed(self, quiz_id: int, user_id: int) -> bool:
        return (
            self.db.query(QuizAttempt.id)
            .filter(
                QuizAttempt.quiz_id == quiz_id,
                QuizAttempt.user_id == user_id,
                QuizAttempt.status == AttemptStatus.PASSED,
            )
            .first()
            is not None
        )

    def count_terminal(self, quiz_id: int, user_id: int) -> int:
        return (
            self.db.query(func.count(QuizAttempt.id))
            .filter(
                QuizAttempt.quiz_id == quiz_id,
                QuizAttempt.user_id == user_id,
                QuizAttempt.status.in_(AttemptStatus.TERMINAL),
            )
            .scalar()
        )

    def count_passed_in_quizzes(self, user_id: int, quiz_ids: List[int]) -> int:
        if not quiz_ids:
            return 0
        return (
            self.db.query(func.count(QuizAttempt.id))
            .filter(
                QuizAttempt.user_id == user_id,
                QuizAttempt.quiz_id.in_(quiz_ids),
                QuizAttempt.status == AttemptStatus.PASSED,
            )
            .scalar()
        )

    def create_attempt(
        self,
        *,
        quiz_id: int,
        user_id: int,
        enrollment_id: Optional[int],
        attempt_number: int,
        started_at: datetime,
    ) -> QuizAttempt:
        attempt = QuizAttempt(
            quiz_id=quiz_id,
            user_id=user_id,
            enrollment_id=enrollment_id,
            attempt_number=attempt_number,
            status=AttemptStatus.IN_PROGRESS,
            started_at=started_at,
        )
        self.db.add(attempt)
        self.db.flush()
        return attempt

    def close_if_in_progress(self, attempt_id: int, values: Dict) -> bool:
        """
        Moves an attempt out of IN_PROGRESS with a single conditional UPDATE.

        Returns False when another request already closed it.
        """
        updated = (
            self.db.query(QuizAttempt)
            .filter(
                QuizAttempt.id == attempt_id,
                QuizAttempt.status == AttemptStatus.IN_PROGRESS,
            )
            .update(values, synchronize_session=False)
        )
        return updated == 1

    def replace_answers(self, attempt_id: int, answers: List[AttemptAnswer]) -> None:
        self.db.query(AttemptAnswer).filter(AttemptAnswer.attempt_id == attempt_id).delete(
            synchronize_session="fetch"
        )
        self.db.add_all(answers)
        self.db.flush()

    def delete_for_user_quizzes(self, user_id: int, quiz_ids: List[int]) -> int:
        if not quiz_ids:
            return 0
        attempt_ids = [
            row[0]
            for row in self.db.query(QuizAttempt.id)
            .filter(QuizAttempt.user_id == user_id, QuizAttempt.quiz_id.in_(quiz_ids))
            .all()
        ]
        if not attempt_ids:
            return 0
        self.db.query(AttemptAnswer).filter(AttemptAnswer.attempt_id.in_(attempt_ids)).delete(
            synchronize_session="fetch"
        )
        deleted = (
            self.db.query(QuizAttempt)
            .filter(QuizAttempt.id.in_(attempt_ids))
            .delete(synchronize_session="fetch")
        )
        logger.info(f"Deleted {deleted} attempts for user_id={user_id}")
        return deleted
