import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from coursegate.application.errors import CourseFlowError
from coursegate.application.progress.final_quiz_gate import FinalQuizGate
from coursegate.application.progress.progress_gate import ProgressGate
from coursegate.infrastructure.db.models import Role
from coursegate.infrastructure.repositories.progress_repository import ProgressRepository
from coursegate.presentation.dependencies import (
    admin_required,
    get_current_user,
    get_db,
    get_progress_gate,
)
from coursegate.presentation.schemas.enrollment_schema import (
    BackfillResponse,
    EnrollmentProgressOut,
    EnrollRequest,
    EnrollResponse,
    LessonProgressOut,
    RestartResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Enrollments"])


@router.post("/enrollments", response_model=EnrollResponse, status_code=status.HTTP_201_CREATED)
def enroll(
    body: EnrollRequest,
    current_user: dict = Depends(get_current_user),
    gate: ProgressGate = Depends(get_progress_gate),
):
    user_id = current_user.get("user_id")
    try:
        enrollment = gate.enroll(user_id, body.course_id)
        return EnrollResponse(message="Enrolled successfully", enrollment_id=enrollment.id)
    except CourseFlowError as e:
        logger.warning(f"Enrollment of user {user_id} in course {body.course_id} rejected: {e.message}")
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error enrolling user {user_id} in course {body.course_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get("/enrollments/{enrollment_id}/progress", response_model=EnrollmentProgressOut)
def get_progress(
    enrollment_id: int,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
    gate: ProgressGate = Depends(get_progress_gate),
):
    """
    Lesson states in course order, the current lesson and whether the final
    quiz can be started.
    """
    enrollment = ProgressRepository(db).get_enrollment(enrollment_id)
    is_staff = current_user.get("role") in Role.STAFF
    if not enrollment or (enrollment.user_id != current_user.get("user_id") and not is_staff):
        logger.warning(f"Progress lookup failed: enrollment {enrollment_id} not found for user {current_user.get('user_id')}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Enrollment not found")

    rows = gate.ordered_progress(enrollment)
    current = gate.current_lesson(enrollment)
    return EnrollmentProgressOut(
        enrollment_id=enrollment.id,
        course_id=enrollment.course_id,
        status=enrollment.status,
        completed_at=enrollment.completed_at,
        current_lesson_id=current.lesson_id if current else None,
        progress_percent=gate.progress_percent(rows),
        final_quiz_startable=FinalQuizGate(db).startable(enrollment.id),
        lessons=[LessonProgressOut.model_validate(row) for row in rows],
    )


@router.post("/me/enrollments/{enrollment_id}/restart", response_model=RestartResponse)
def restart_course(
    enrollment_id: int,
    current_user: dict = Depends(get_current_user),
    gate: ProgressGate = Depends(get_progress_gate),
):
    """
    Drops progress, attempts and certificate for the course and starts over.
    """
    user_id = current_user.get("user_id")
    try:
        enrollment = gate.reset(enrollment_id, user_id)
        return RestartResponse(success=True, course_id=enrollment.course_id, message="Course restarted")
    except CourseFlowError as e:
        logger.warning(f"Restart of enrollment {enrollment_id} by user {user_id} rejected: {e.message}")
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error restarting enrollment {enrollment_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post("/admin/lessons/{lesson_id}/backfill-progress", response_model=BackfillResponse)
def backfill_progress(
    lesson_id: int,
    admin: dict = Depends(admin_required),
    gate: ProgressGate = Depends(get_progress_gate),
):
    """
    Called by course authoring after a lesson is added to a course that
    already has students.
    """
    try:
        logger.info(f"Admin {admin['user_id']} backfilling progress for lesson {lesson_id}")
        created = gate.backfill_lesson(lesson_id)
        return BackfillResponse(lesson_id=lesson_id, created=created)
    except CourseFlowError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error backfilling lesson {lesson_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal Server Error")
