import logging
from fastapi import APIRouter, Depends, HTTPException, Response, status

from coursegate.application.assessment.answer_evaluator import SubmittedAnswer
from coursegate.application.assessment.attempt_service import AttemptService, AttemptView, is_final_quiz
from coursegate.application.assessment.question_rules import student_metadata
from coursegate.application.errors import CourseFlowError
from coursegate.infrastructure.db.models import AttemptStatus
from coursegate.presentation.dependencies import get_attempt_service, get_current_user
from coursegate.presentation.schemas.quiz_attempt_schema import (
    AttemptDetailOut,
    AttemptOut,
    CertificateOut,
    OptionView,
    QuestionView,
    QuizView,
    StartAttemptRequest,
    SubmitRequest,
    SubmitResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/quiz", tags=["Quiz Attempts"])


# --------------------------------------------------
# 1. Start / resume attempt
# --------------------------------------------------
@router.post("/attempt", response_model=AttemptOut, status_code=status.HTTP_201_CREATED)
def start_attempt(
    body: StartAttemptRequest,
    response: Response,
    current_user: dict = Depends(get_current_user),
    service: AttemptService = Depends(get_attempt_service),
):
    """
    Starts a new attempt, or returns the user's open attempt if it has not expired.
    """
    user_id = current_user.get("user_id")
    try:
        result = service.start(body.quiz_id, user_id, body.enrollment_id)
        if not result.created:
            response.status_code = status.HTTP_200_OK
        return AttemptOut.model_validate(result.attempt)
    except CourseFlowError as e:
        logger.warning(f"Start rejected for user {user_id} on quiz {body.quiz_id}: {e.message}")
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(
            f"Unexpected error starting quiz {body.quiz_id} for user {user_id}: {e}",
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred.",
        )


# --------------------------------------------------
# 2. Inspect attempt
# --------------------------------------------------
@router.get("/attempt/{attempt_id}")
def get_attempt(
    attempt_id: int,
    current_user: dict = Depends(get_current_user),
    service: AttemptService = Depends(get_attempt_service),
):
    """
    Returns the attempt with its quiz. `remainingSeconds` is present only while
    the attempt is in progress.
    """
    try:
        view = service.inspect(attempt_id, current_user.get("user_id"), current_user.get("role"))
    except CourseFlowError as e:
        logger.warning(f"Inspect of attempt {attempt_id} rejected: {e.message}")
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error inspecting attempt {attempt_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred.",
        )

    body = _attempt_detail(view).model_dump(by_alias=True, mode="json")
    if view.remaining_seconds is None:
        body.pop("remainingSeconds", None)
    return body


# --------------------------------------------------
# 3. Submit attempt
# --------------------------------------------------
@router.post("/submit", response_model=SubmitResponse, response_model_exclude_none=True)
def submit_attempt(
    body: SubmitRequest,
    current_user: dict = Depends(get_current_user),
    service: AttemptService = Depends(get_attempt_service),
):
    """
    Grades the attempt. A failed certificate generation leaves `certificate` out
    of the response but does not fail the request.
    """
    user_id = current_user.get("user_id")
    answers = [
        (
            answer.question_id,
            SubmittedAnswer(
                selected_option_ids=list(answer.selected_option_ids or []),
                payload=answer.answer_payload,
            ),
        )
        for answer in body.answers
    ]
    try:
        result = service.submit(body.attempt_id, user_id, answers)
    except CourseFlowError as e:
        logger.warning(f"Submit of attempt {body.attempt_id} by user {user_id} rejected: {e.message}")
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error submitting attempt {body.attempt_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred.",
        )

    return SubmitResponse(
        score_percent=result.score_percent,
        correct_count=result.correct_count,
        total_questions=result.total_questions,
        passed=result.passed,
        certificate=CertificateOut.model_validate(result.certificate) if result.certificate else None,
    )


def _attempt_detail(view: AttemptView) -> AttemptDetailOut:
    attempt, quiz = view.attempt, view.quiz
    finished = attempt.status != AttemptStatus.IN_PROGRESS

    questions = [
        QuestionView(
            id=question.id,
            text=question.text,
            type=question.type,
            # Explanations would give the answers away mid-attempt
            explanation=question.explanation if finished else None,
            metadata=student_metadata(question),
            options=[OptionView(id=option.id, text=option.text) for option in question.options],
        )
        for question in quiz.questions
    ]

    return AttemptDetailOut(
        **AttemptOut.model_validate(attempt).model_dump(),
        remaining_seconds=view.remaining_seconds,
        quiz=QuizView(
            id=quiz.id,
            course_id=quiz.course_id,
            lesson_id=quiz.lesson_id,
            title=quiz.title,
            description=quiz.description,
            is_final=is_final_quiz(quiz),
            passing_score=quiz.passing_score,
            attempt_limit=quiz.attempt_limit,
            time_limit_minutes=view.time_limit_minutes,
            questions=questions,
        ),
    )
