import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from coursegate.clock import Clock, utcnow
from coursegate.application.errors import NotFound
from coursegate.infrastructure.db.models import (
    Enrollment,
    EnrollmentStatus,
    LessonProgress,
    ProgressStatus,
)
from coursegate.infrastructure.repositories.attempt_repository import AttemptRepository
from coursegate.infrastructure.repositories.certificate_repository import CertificateRepository
from coursegate.infrastructure.repositories.progress_repository import ProgressRepository
from coursegate.infrastructure.repositories.quiz_repository import QuizRepository

logger = logging.getLogger(__name__)


class ProgressGate:
    """
    Lesson unlock state machine: LOCKED -> UNLOCKED -> COMPLETED.

    seed() and unlock_next() run inside the caller's transaction. enroll(),
    backfill_lesson() and reset() are standalone operations and commit.
    """

    def __init__(self, db: Session, clock: Clock = utcnow):
        self.db = db
        self._clock = clock
        self._progress = ProgressRepository(db)
        self._attempts = AttemptRepository(db)
        self._quizzes = QuizRepository(db)
        self._certificates = CertificateRepository(db)

    # ---------------------------
    # In-transaction steps
    # ---------------------------

    def seed(self, enrollment: Enrollment) -> List[LessonProgress]:
        """
        Creates one progress row per course lesson: the first UNLOCKED, the rest
        LOCKED. Lessons that already have a row are left alone.
        """
        now = self._clock()
        lessons = self._progress.get_ordered_lessons(enrollment.course_id)
        existing = {row.lesson_id for row in self._progress.list_progress(enrollment.id)}

        created = []
        for index, lesson in enumerate(lessons):
            if lesson.id in existing:
                continue
            created.append(
                self._progress.add_progress(
                    enrollment=enrollment,
                    lesson_id=lesson.id,
                    unlocked_at=now if index == 0 else None,
                )
            )
        self.db.flush()
        logger.info(
            f"Seeded {len(created)} progress rows for enrollment_id={enrollment.id} "
            f"({len(lessons)} lessons in course {enrollment.course_id})"
        )
        return created

    def unlock_next(self, enrollment_id: int, course_id: int, lesson_id: int) -> Optional[int]:
        """
        Unlocks the lesson after `lesson_id` if it is still LOCKED.

        Returns the unlocked lesson id, or None when there is no next lesson or
        it was already unlocked/completed.
        """
        lessons = self._progress.get_ordered_lessons(course_id)
        ids = [lesson.id for lesson in lessons]
        if lesson_id not in ids:
            logger.warning(f"Lesson {lesson_id} is not part of course {course_id}; nothing to unlock")
            return None

        position = ids.index(lesson_id)
        if position + 1 >= len(ids):
            logger.debug(f"Lesson {lesson_id} is the last lesson of course {course_id}")
            return None

        next_id = ids[position + 1]
        if self._progress.unlock_if_locked(enrollment_id, next_id, self._clock()):
            logger.info(f"Unlocked lesson_id={next_id} for enrollment_id={enrollment_id}")
            return next_id
        return None

    # ---------------------------
    # Derived state
    # ---------------------------

    def ordered_progress(self, enrollment: Enrollment) -> List[LessonProgress]:
        order = {
            lesson.id: index
            for index, lesson in enumerate(self._progress.get_ordered_lessons(enrollment.course_id))
        }
        rows = self._progress.list_progress(enrollment.id)
        return sorted(rows, key=lambda row: order.get(row.lesson_id, len(order)))

    def progress_percent(self, rows: List[LessonProgress]) -> int:
        """Completed lessons as a whole percentage, halves rounded up. 0 with no lessons."""
        total = len(rows)
        if not total:
            return 0
        completed = sum(1 for row in rows if row.status == ProgressStatus.COMPLETED)
        return (200 * completed + total) // (2 * total)

    def current_lesson(self, enrollment: Enrollment) -> Optional[LessonProgress]:
        """First non-COMPLETED row in course order."""
        for row in self.ordered_progress(enrollment):
            if row.status != ProgressStatus.COMPLETED:
                return row
        return None

    # ---------------------------
    # Standalone operations
    # ---------------------------

    def enroll(self, user_id: int, course_id: int) -> Enrollment:
        """
        Creates (or reactivates) the user's enrollment and seeds its progress.
        """
        try:
            course = self._progress.get_course(course_id)
            if not course:
                raise NotFound(f"Course {course_id} not found")

            enrollment = self._progress.get_user_enrollment(user_id, course_id)
            if enrollment is None:
                enrollment = self._progress.create_enrollment(user_id, course_id)
                logger.info(f"Created enrollment_id={enrollment.id} for user_id={user_id}, course_id={course_id}")
            else:
                enrollment.status = EnrollmentStatus.ACTIVE
                logger.info(f"Reactivated enrollment_id={enrollment.id} for user_id={user_id}")

            self.seed(enrollment)
            self.db.commit()
            self.db.refresh(enrollment)
            return enrollment
        except Exception:
            self.db.rollback()
            raise

    def backfill_lesson(self, lesson_id: int) -> int:
        """
        Gives every active enrollment a row for a newly added lesson.

        The row starts UNLOCKED when the student has nothing left to do (no rows
        at all, or every row COMPLETED); otherwise LOCKED.
        """
        try:
            lesson = self._progress.get_lesson(lesson_id)
            if not lesson:
                raise NotFound(f"Lesson {lesson_id} not found")

            course_id = lesson.module.course_id
            now = self._clock()
            created = 0
            for enrollment in self._progress.get_active_enrollments(course_id):
                rows = self._progress.list_progress(enrollment.id)
                if any(row.lesson_id == lesson_id for row in rows):
                    continue
                caught_up = all(row.status == ProgressStatus.COMPLETED for row in rows)
                self._progress.add_progress(
                    enrollment=enrollment,
                    lesson_id=lesson_id,
                    unlocked_at=now if caught_up else None,
                )
                created += 1

            self.db.commit()
            logger.info(f"Backfilled lesson_id={lesson_id} into {created} enrollments of course {course_id}")
            return created
        except Exception:
            self.db.rollback()
            raise

    def reset(self, enrollment_id: int, user_id: int) -> Enrollment:
        """
        Restarts a course: drops progress, attempts, certificate, then re-seeds.
        """
        try:
            enrollment = self._progress.get_enrollment(enrollment_id)
            if not enrollment or enrollment.user_id != user_id:
                raise NotFound("Enrollment not found")

            course_id = enrollment.course_id
            quiz_ids = self._quizzes.get_course_quiz_ids(course_id)

            self._certificates.delete_for_user_course(user_id, course_id)
            self._attempts.delete_for_user_quizzes(user_id, quiz_ids)
            removed = self._progress.delete_progress(enrollment.id)
            self.db.expire(enrollment)

            enrollment.status = EnrollmentStatus.ACTIVE
            enrollment.completed_at = None
            self.seed(enrollment)

            self.db.commit()
            self.db.refresh(enrollment)
            logger.info(
                f"Reset enrollment_id={enrollment_id} for user_id={user_id}: "
                f"removed {removed} progress rows"
            )
            return enrollment
        except Exception:
            self.db.rollback()
            raise
