import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from pydantic import ValidationError as RuleValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from coursegate.clock import Clock, elapsed_seconds, utcnow
from coursegate.config import get_settings
from coursegate.application.errors import Conflict, Forbidden, NotFound, ValidationError
from coursegate.application.assessment.answer_evaluator import SubmittedAnswer, is_answer_correct
from coursegate.application.assessment.question_rules import build_rule
from coursegate.application.certificates.certificate_trigger import CertificationTrigger
from coursegate.application.progress.final_quiz_gate import FinalQuizGate
from coursegate.application.progress.progress_gate import ProgressGate
from coursegate.infrastructure.db.models import (
    AttemptAnswer,
    AttemptStatus,
    Certificate,
    Enrollment,
    EnrollmentStatus,
    ProgressStatus,
    QuestionModel,
    Quiz,
    QuizAttempt,
    Role,
)
from coursegate.infrastructure.repositories.attempt_repository import AttemptRepository
from coursegate.infrastructure.repositories.certificate_repository import CertificateRepository
from coursegate.infrastructure.repositories.progress_repository import ProgressRepository
from coursegate.infrastructure.repositories.quiz_repository import QuizRepository
from coursegate.infrastructure.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)


# ---------------------------
# Results
# ---------------------------

@dataclass
class StartResult:
    attempt: QuizAttempt
    created: bool


@dataclass
class AttemptView:
    attempt: QuizAttempt
    quiz: Quiz
    time_limit_minutes: int
    remaining_seconds: Optional[int]


@dataclass
class SubmitResult:
    attempt_id: int
    score_percent: int
    correct_count: int
    total_questions: int
    passed: bool
    certificate: Optional[Certificate] = None


def score_percent(correct_count: int, total: int) -> int:
    """round(100 * correct / total), halves rounded up."""
    return (200 * correct_count + total) // (2 * total)


def is_final_quiz(quiz: Quiz) -> bool:
    return bool(quiz.is_final) or quiz.lesson_id is None


# ---------------------------
# Attempt lifecycle
# ---------------------------

class AttemptService:
    """
    Start, inspect and submit timed quiz attempts.

    An attempt moves IN_PROGRESS -> PASSED | FAILED exactly once. Expiry is
    lazy: an attempt past its time limit is closed as FAILED the next time
    someone starts or inspects it.
    """

    def __init__(
        self,
        db: Session,
        *,
        clock: Clock = utcnow,
        certificates: Optional[CertificationTrigger] = None,
    ):
        self.db = db
        self._clock = clock
        self._default_limit = get_settings().default_time_limit_minutes

        self._quizzes = QuizRepository(db)
        self._attempts = AttemptRepository(db)
        self._progress = ProgressRepository(db)
        self._users = UserRepository(db)
        self._outbox = CertificateRepository(db)

        self._progress_gate = ProgressGate(db, clock=clock)
        self._final_gate = FinalQuizGate(db)
        self._certificates = certificates or CertificationTrigger(db, clock=clock)

    # ---------------------------
    # Public API
    # ---------------------------

    def start(self, quiz_id: int, user_id: int, enrollment_id: Optional[int] = None) -> StartResult:
        """
        Starts a new attempt, or returns the open one if it is still within
        its time limit.
        """
        logger.info(f"User {user_id} starting quiz {quiz_id} (enrollment_id={enrollment_id})")
        try:
            quiz = self._quizzes.get_quiz(quiz_id)
            if not quiz:
                raise NotFound(f"Quiz {quiz_id} not found")

            enrollment = self._check_access(quiz, user_id, enrollment_id)

            now = self._clock()
            limit_seconds = self.time_limit_minutes(quiz) * 60
            open_attempt = self._attempts.get_in_progress(quiz.id, user_id)
            if open_attempt:
                elapsed = elapsed_seconds(open_attempt.started_at, now)
                if elapsed < limit_seconds:
                    logger.info(f"Resuming attempt {open_attempt.id} for user {user_id} ({elapsed}s elapsed)")
                    return StartResult(attempt=open_attempt, created=False)
                self._expire(open_attempt, elapsed, now)
                self.db.commit()

            prior = self._attempts.count_terminal(quiz.id, user_id)
            if prior >= quiz.attempt_limit:
                logger.warning(f"User {user_id} reached the attempt limit ({quiz.attempt_limit}) for quiz {quiz.id}")
                raise Conflict(f"Attempt limit reached. Maximum attempts: {quiz.attempt_limit}.")

            attempt = self._attempts.create_attempt(
                quiz_id=quiz.id,
                user_id=user_id,
                enrollment_id=enrollment.id if enrollment else None,
                attempt_number=prior + 1,
                started_at=now,
            )
            self.db.commit()
            self.db.refresh(attempt)
            logger.info(f"Created attempt {attempt.id} (#{attempt.attempt_number}) for user {user_id} on quiz {quiz.id}")
            return StartResult(attempt=attempt, created=True)
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Concurrent start for quiz {quiz_id} by user {user_id}: {e}")
            raise Conflict("Another attempt was started at the same time. Please try again.")
        except Exception:
            self.db.rollback()
            raise

    def inspect(self, attempt_id: int, requester_id: int, requester_role: str) -> AttemptView:
        attempt = self._attempts.get_attempt(attempt_id)
        if not attempt:
            raise NotFound(f"Attempt {attempt_id} not found")

        if attempt.user_id != requester_id and requester_role not in Role.STAFF:
            logger.warning(f"User {requester_id} may not view attempt {attempt_id}")
            raise Forbidden("You are not allowed to view this attempt")

        quiz = self._quizzes.get_quiz_with_questions(attempt.quiz_id)
        limit_minutes = self.time_limit_minutes(quiz)
        remaining = None

        if attempt.status == AttemptStatus.IN_PROGRESS:
            now = self._clock()
            elapsed = elapsed_seconds(attempt.started_at, now)
            if elapsed >= limit_minutes * 60:
                try:
                    self._expire(attempt, elapsed, now)
                    self.db.commit()
                except Exception:
                    self.db.rollback()
                    raise
                self.db.refresh(attempt)
            else:
                remaining = max(0, limit_minutes * 60 - elapsed)

        return AttemptView(
            attempt=attempt,
            quiz=quiz,
            time_limit_minutes=limit_minutes,
            remaining_seconds=remaining,
        )

    def submit(
        self,
        attempt_id: int,
        user_id: int,
        answers: List[Tuple[int, SubmittedAnswer]],
    ) -> SubmitResult:
        """
        Grades an open attempt and applies every resulting state change in one
        transaction. Certificate issuance runs after commit and cannot fail
        the submission.
        """
        logger.info(f"User {user_id} submitting attempt {attempt_id} with {len(answers)} answers")
        try:
            attempt = self._attempts.get_attempt(attempt_id)
            if not attempt or attempt.user_id != user_id:
                raise NotFound(f"Attempt {attempt_id} not found")
            if attempt.status != AttemptStatus.IN_PROGRESS:
                raise Conflict("This attempt is already finished")

            quiz = self._quizzes.get_quiz_with_questions(attempt.quiz_id)
            questions = quiz.questions
            if not questions:
                logger.error(f"Quiz {quiz.id} has no questions and cannot be graded")
                raise ValidationError("This quiz has no questions")

            submitted = self._index_answers(answers, questions)
            now = self._clock()

            rows = []
            for question in questions:
                answer = submitted.get(question.id)
                rows.append(
                    AttemptAnswer(
                        attempt_id=attempt.id,
                        question_id=question.id,
                        selected_option_ids=sorted(set(answer.selected_option_ids)) if answer else [],
                        answer_payload=answer.payload if answer else None,
                        is_correct=self._grade(question, answer),
                    )
                )

            total = len(questions)
            correct_count = sum(1 for row in rows if row.is_correct)
            score = score_percent(correct_count, total)
            passed = score >= quiz.passing_score
            final = is_final_quiz(quiz)

            closed = self._attempts.close_if_in_progress(
                attempt.id,
                {
                    QuizAttempt.status: AttemptStatus.PASSED if passed else AttemptStatus.FAILED,
                    QuizAttempt.submitted_at: now,
                    QuizAttempt.duration_seconds: elapsed_seconds(attempt.started_at, now),
                    QuizAttempt.score_percent: score,
                    QuizAttempt.correct_count: correct_count,
                    QuizAttempt.wrong_count: total - correct_count,
                },
            )
            if not closed:
                logger.warning(f"Attempt {attempt.id} was finished by a concurrent request")
                raise Conflict("This attempt is already finished")

            self._attempts.replace_answers(attempt.id, rows)
            self._users.add_reward_points(user_id, correct_count)

            if not final:
                self._record_lesson_result(attempt, quiz, score, passed, now)
            elif passed:
                self._complete_enrollment(attempt, quiz, now)

            self.db.commit()
            logger.info(
                f"Graded attempt {attempt.id}: {correct_count}/{total} correct, "
                f"score={score}%, passed={passed}"
            )
        except Exception:
            self.db.rollback()
            raise

        certificate = None
        if final and passed:
            certificate = self._certificates.process_attempt(attempt_id, user_id)

        return SubmitResult(
            attempt_id=attempt_id,
            score_percent=score,
            correct_count=correct_count,
            total_questions=total,
            passed=passed,
            certificate=certificate,
        )

    def time_limit_minutes(self, quiz: Quiz) -> int:
        if quiz.time_limit_minutes and quiz.time_limit_minutes > 0:
            return quiz.time_limit_minutes
        return self._default_limit

    # ---------------------------
    # Internal Logic
    # ---------------------------

    def _check_access(self, quiz: Quiz, user_id: int, enrollment_id: Optional[int]) -> Optional[Enrollment]:
        enrollment = None
        if enrollment_id is not None:
            enrollment = self._progress.get_enrollment(enrollment_id)
            if not enrollment or enrollment.user_id != user_id:
                raise NotFound("Enrollment not found")
            if enrollment.course_id != quiz.course_id:
                raise ValidationError("Enrollment does not belong to this quiz's course")

        if not is_final_quiz(quiz):
            if enrollment is None:
                raise ValidationError("enrollmentId is required for a lesson quiz")
            progress = self._progress.get_progress(enrollment.id, quiz.lesson_id)
            if not progress or progress.status == ProgressStatus.LOCKED:
                logger.warning(f"User {user_id} tried to start quiz {quiz.id} on a locked lesson")
                raise Forbidden("This lesson is locked. Pass the previous lesson's quiz first.")
            if progress.status == ProgressStatus.COMPLETED:
                raise Conflict("You have already passed this lesson's quiz")
            return enrollment

        if enrollment is None:
            enrollment = self._progress.get_user_enrollment(user_id, quiz.course_id)
            if enrollment is None:
                raise Forbidden("Enroll in the course before taking its final quiz")
        if not self._final_gate.startable(enrollment.id):
            logger.warning(f"User {user_id} tried to start final quiz {quiz.id} with unfinished lessons")
            raise Forbidden("Complete every lesson quiz before starting the final quiz")
        if self._final_gate.already_passed(quiz.id, user_id):
            raise Conflict("You have already passed the final quiz")
        return enrollment

    def _expire(self, attempt: QuizAttempt, elapsed: int, now) -> None:
        closed = self._attempts.close_if_in_progress(
            attempt.id,
            {
                QuizAttempt.status: AttemptStatus.FAILED,
                QuizAttempt.submitted_at: now,
                QuizAttempt.duration_seconds: elapsed,
            },
        )
        if closed:
            logger.info(f"Attempt {attempt.id} expired after {elapsed}s and was marked FAILED")
        self.db.expire(attempt)

    def _index_answers(
        self,
        answers: List[Tuple[int, SubmittedAnswer]],
        questions: List[QuestionModel],
    ) -> Dict[int, SubmittedAnswer]:
        known = {question.id for question in questions}
        indexed: Dict[int, SubmittedAnswer] = {}
        for question_id, answer in answers:
            if question_id not in known:
                raise ValidationError(f"Question {question_id} is not part of this quiz")
            if question_id in indexed:
                raise ValidationError(f"Question {question_id} was answered more than once")
            indexed[question_id] = answer
        return indexed

    def _grade(self, question: QuestionModel, answer: Optional[SubmittedAnswer]) -> bool:
        try:
            rule = build_rule(question)
        except RuleValidationError as e:
            logger.warning(f"Question {question.id} ({question.type}) has invalid grading data: {e}")
            return False
        return is_answer_correct(rule, answer)

    def _record_lesson_result(self, attempt: QuizAttempt, quiz: Quiz, score: int, passed: bool, now) -> None:
        enrollment_id = attempt.enrollment_id
        if enrollment_id is None:
            enrollment = self._progress.get_user_enrollment(attempt.user_id, quiz.course_id)
            if enrollment is None:
                logger.warning(f"Attempt {attempt.id} has no enrollment; lesson progress not updated")
                return
            enrollment_id = enrollment.id

        self._progress.record_attempt(
            enrollment_id=enrollment_id,
            lesson_id=quiz.lesson_id,
            score_percent=score,
            passed=passed,
            now=now,
        )
        if passed:
            logger.info(f"Lesson {quiz.lesson_id} completed for enrollment_id={enrollment_id}")
            self._progress_gate.unlock_next(enrollment_id, quiz.course_id, quiz.lesson_id)

    def _complete_enrollment(self, attempt: QuizAttempt, quiz: Quiz, now) -> None:
        enrollment = None
        if attempt.enrollment_id is not None:
            enrollment = self._progress.get_enrollment(attempt.enrollment_id)
        if enrollment is None:
            enrollment = self._progress.get_user_enrollment(attempt.user_id, quiz.course_id)

        if enrollment is not None:
            enrollment.status = EnrollmentStatus.COMPLETED
            enrollment.completed_at = now
            logger.info(f"Enrollment {enrollment.id} completed by final attempt {attempt.id}")

        self._outbox.enqueue(attempt_id=attempt.id, user_id=attempt.user_id, course_id=quiz.course_id)
