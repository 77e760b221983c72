from datetime import datetime
from typing import List, Optional
import logging
from sqlalchemy import func
from sqlalchemy.orm import Session
from ..db.models import (
    Course,
    CourseModule,
    Lesson,
    Enrollment,
    LessonProgress,
    EnrollmentStatus,
    ProgressStatus,
)

logger = logging.getLogger(__name__)


class ProgressRepository:
    """
    Enrollments, lesson progress rows and the course ordering they follow.

    Nothing here commits; the calling service owns the transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    # ---------------------------
    # Course ordering
    # ---------------------------

    def get_course(self, course_id: int) -> Optional[Course]:
        return self.db.query(Course).filter(Course.id == course_id).first()

    def get_lesson(self, lesson_id: int) -> Optional[Lesson]:
        return self.db.query(Lesson).filter(Lesson.id == lesson_id).first()

    def get_ordered_lessons(self, course_id: int) -> List[Lesson]:
        """
        All lessons of a course in course order: module order, then lesson order.
        """
        return (
            self.db.query(Lesson)
            .join(CourseModule, Lesson.module_id == CourseModule.id)
            .filter(CourseModule.course_id == course_id)
            .order_by(CourseModule.order.asc(), Lesson.order.asc(), Lesson.id.asc())
            .all()
        )

    # ---------------------------
    # Enrollments
    # ---------------------------

    def get_enrollment(self, enrollment_id: int) -> Optional[Enrollment]:
        return self.db.query(Enrollment).filter(Enrollment.id == enrollment_id).first()

    def get_user_enrollment(self, user_id: int, course_id: int) -> Optional[Enrollment]:
        return (
            self.db.query(Enrollment)
            .filter(Enrollment.user_id == user_id, Enrollment.course_id == course_id)
            .first()
        )

    def get_active_enrollments(self, course_id: int) -> List[Enrollment]:
        return (
            self.db.query(Enrollment)
            .filter(
                Enrollment.course_id == course_id,
                Enrollment.status == EnrollmentStatus.ACTIVE,
            )
            .all()
        )

    def create_enrollment(self, user_id: int, course_id: int) -> Enrollment:
        enrollment = Enrollment(
            user_id=user_id,
            course_id=course_id,
            status=EnrollmentStatus.ACTIVE,
        )
        self.db.add(enrollment)
        self.db.flush()
        return enrollment

    # ---------------------------
    # Lesson progress
    # ---------------------------

    def get_progress(self, enrollment_id: int, lesson_id: int) -> Optional[LessonProgress]:
        return (
            self.db.query(LessonProgress)
            .filter(
                LessonProgress.enrollment_id == enrollment_id,
                LessonProgress.lesson_id == lesson_id,
            )
            .first()
        )

    def list_progress(self, enrollment_id: int) -> List[LessonProgress]:
        return (
            self.db.query(LessonProgress)
            .filter(LessonProgress.enrollment_id == enrollment_id)
            .all()
        )

    def count_unfinished(self, enrollment_id: int) -> int:
        return (
            self.db.query(func.count(LessonProgress.id))
            .filter(
                LessonProgress.enrollment_id == enrollment_id,
                LessonProgress.status != ProgressStatus.COMPLETED,
            )
            .scalar()
        )

    def add_progress(
        self,
        *,
        enrollment: Enrollment,
        lesson_id: int,
        unlocked_at: Optional[datetime],
    ) -> LessonProgress:
        row = LessonProgress(
            enrollment_id=enrollment.id,
            user_id=enrollment.user_id,
            lesson_id=lesson_id,
            status=ProgressStatus.UNLOCKED if unlocked_at else ProgressStatus.LOCKED,
            attempts_used=0,
            unlocked_at=unlocked_at,
        )
        self.db.add(row)
        return row

    def unlock_if_locked(self, enrollment_id: int, lesson_id: int, now: datetime) -> bool:
        updated = (
            self.db.query(LessonProgress)
            .filter(
                LessonProgress.enrollment_id == enrollment_id,
                LessonProgress.lesson_id == lesson_id,
                LessonProgress.status == ProgressStatus.LOCKED,
            )
            .update(
                {"status": ProgressStatus.UNLOCKED, "unlocked_at": now},
                synchronize_session=False,
            )
        )
        return updated == 1

    def delete_progress(self, enrollment_id: int) -> int:
        return (
            self.db.query(LessonProgress)
            .filter(LessonProgress.enrollment_id == enrollment_id)
            .delete(synchronize_session="fetch")
        )

    def record_attempt(
        self,
        *,
        enrollment_id: int,
        lesson_id: int,
        score_percent: int,
        passed: bool,
        now: datetime,
    ) -> bool:
        values = {
            LessonProgress.attempts_used: LessonProgress.attempts_used + 1,
            LessonProgress.last_attempt_score: score_percent,
        }
        if passed:
            values[LessonProgress.status] = ProgressStatus.COMPLETED
            values[LessonProgress.completed_at] = now
        updated = (
            self.db.query(LessonProgress)
            .filter(
                LessonProgress.enrollment_id == enrollment_id,
                LessonProgress.lesson_id == lesson_id,
            )
            .update(values, synchronize_session=False)
        )
        return updated == 1
