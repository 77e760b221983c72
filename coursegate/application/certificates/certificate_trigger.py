import logging
import uuid
from typing import Optional

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from coursegate.clock import Clock, utcnow
from coursegate.config import get_settings
from coursegate.application.errors import Conflict, Forbidden, NotFound
from coursegate.infrastructure.db.models import (
    AttemptStatus,
    Certificate,
    OutboxStatus,
    Quiz,
    QuizAttempt,
)
from coursegate.infrastructure.repositories.attempt_repository import AttemptRepository
from coursegate.infrastructure.repositories.certificate_repository import CertificateRepository
from coursegate.infrastructure.repositories.progress_repository import ProgressRepository
from coursegate.infrastructure.repositories.quiz_repository import QuizRepository

logger = logging.getLogger(__name__)


class CertificationTrigger:
    """
    Issues the course certificate for a passed final attempt.

    Submit writes an outbox row in the grading transaction; after commit it
    calls process_attempt(), which never raises. Rows left FAILED can be
    picked up again by process_pending().
    """

    def __init__(self, db: Session, clock: Clock = utcnow, max_tries: Optional[int] = None):
        self.db = db
        self._clock = clock
        self._max_tries = max_tries or get_settings().certificate_max_tries
        self._attempts = AttemptRepository(db)
        self._certificates = CertificateRepository(db)
        self._progress = ProgressRepository(db)
        self._quizzes = QuizRepository(db)

    def issue(self, attempt_id: int, expected_user_id: Optional[int] = None) -> Certificate:
        """
        Creates or refreshes the (user, course) certificate from a passed final
        attempt and commits. Raises on any problem.
        """
        attempt: QuizAttempt = self._attempts.get_attempt(attempt_id)
        if not attempt:
            raise NotFound(f"Attempt {attempt_id} not found")
        if expected_user_id is not None and attempt.user_id != expected_user_id:
            raise Forbidden("Attempt belongs to another user")

        quiz: Quiz = attempt.quiz
        if not (quiz.is_final or quiz.lesson_id is None) or attempt.status != AttemptStatus.PASSED:
            raise Conflict("A certificate requires a passed final quiz attempt")

        total_lessons = len(self._progress.get_ordered_lessons(quiz.course_id))
        passed_quizzes = self._attempts.count_passed_in_quizzes(
            attempt.user_id, self._quizzes.get_course_quiz_ids(quiz.course_id)
        )

        certificate = self._certificates.get_certificate(attempt.user_id, quiz.course_id)
        if certificate is None:
            certificate = Certificate(
                uuid=str(uuid.uuid4()),
                user_id=attempt.user_id,
                course_id=quiz.course_id,
            )
            self.db.add(certificate)

        certificate.quiz_attempt_id = attempt.id
        certificate.final_score = attempt.score_percent or 0
        certificate.total_lessons = total_lessons
        certificate.total_quizzes_passed = passed_quizzes
        certificate.issued_at = self._clock()

        outbox = self._certificates.get_outbox_for_attempt(attempt.id)
        if outbox:
            outbox.status = OutboxStatus.DONE
            outbox.processed_at = self._clock()

        self.db.commit()
        self.db.refresh(certificate)
        logger.info(
            f"Issued certificate {certificate.uuid} for user_id={attempt.user_id}, course_id={quiz.course_id}"
        )
        return certificate

    def process_attempt(self, attempt_id: int, expected_user_id: Optional[int] = None) -> Optional[Certificate]:
        """
        Best-effort issue with bounded retries on transient database errors.
        Failures are logged and recorded on the outbox row, never raised.
        """
        tries = 0
        try:
            for retry_state in Retrying(
                stop=stop_after_attempt(self._max_tries),
                wait=wait_exponential(multiplier=0.1, max=2),
                retry=retry_if_exception_type(OperationalError),
                reraise=True,
            ):
                with retry_state:
                    tries += 1
                    try:
                        return self.issue(attempt_id, expected_user_id)
                    except Exception:
                        self.db.rollback()
                        raise
        except Exception as e:
            logger.error(f"Certificate was not issued for attempt {attempt_id}: {e}", exc_info=True)
            self._mark_failed(attempt_id, tries, str(e))
            return None

    def process_pending(self, limit: int = 50) -> int:
        """
        Retries outbox rows that are still PENDING or FAILED and have fewer than
        max_tries recorded tries. Returns the number of certificates issued.
        """
        jobs = [
            (entry.attempt_id, entry.user_id)
            for entry in self._certificates.list_pending(self._max_tries, limit)
        ]
        issued = 0
        for attempt_id, user_id in jobs:
            if self.process_attempt(attempt_id, user_id) is not None:
                issued += 1
        logger.info(f"Processed certificate outbox: {issued} of {len(jobs)} issued")
        return issued

    def _mark_failed(self, attempt_id: int, tries: int, error: str) -> None:
        try:
            outbox = self._certificates.get_outbox_for_attempt(attempt_id)
            if outbox is None:
                return
            outbox.status = OutboxStatus.FAILED
            outbox.tries = (outbox.tries or 0) + tries
            outbox.last_error = error[:2000]
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Could not record certificate failure for attempt {attempt_id}: {e}")
