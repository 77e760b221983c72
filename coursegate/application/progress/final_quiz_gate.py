import logging

from sqlalchemy.orm import Session

from coursegate.infrastructure.repositories.attempt_repository import AttemptRepository
from coursegate.infrastructure.repositories.progress_repository import ProgressRepository

logger = logging.getLogger(__name__)


class FinalQuizGate:
    """
    Guards the course-level final quiz.

    The final quiz opens once every lesson of the enrollment is COMPLETED and
    closes for good once the user has a PASSED attempt on it.
    """

    def __init__(self, db: Session):
        self._progress = ProgressRepository(db)
        self._attempts = AttemptRepository(db)

    def startable(self, enrollment_id: int) -> bool:
        unfinished = self._progress.count_unfinished(enrollment_id)
        logger.debug(f"Enrollment {enrollment_id} has {unfinished} unfinished lessons")
        return unfinished == 0

    def already_passed(self, quiz_id: int, user_id: int) -> bool:
        return self._attempts.has_passed(quiz_id, user_id)
