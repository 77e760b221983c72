import pytest
from fastapi import Depends
from fastapi.testclient import TestClient

from coursegate.application.assessment.attempt_service import AttemptService
from coursegate.application.certificates.certificate_trigger import CertificationTrigger
from coursegate.application.progress.progress_gate import ProgressGate
from coursegate.infrastructure.db.models import QuestionType, Role
from coursegate.presentation.dependencies import get_attempt_service, get_db, get_progress_gate
from main import app
from tests.factories import add_question, auth_headers, make_course, make_user


@pytest.fixture
def client(db, clock):
    def override_get_db():
        yield db

    def override_attempt_service(session=Depends(get_db)):
        return AttemptService(session, clock=clock)

    def override_progress_gate(session=Depends(get_db)):
        return ProgressGate(session, clock=clock)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_attempt_service] = override_attempt_service
    app.dependency_overrides[get_progress_gate] = override_progress_gate
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def student(db):
    return make_user(db, "Api Student")


@pytest.fixture
def setup(db):
    return make_course(db, lessons=2)


def enroll_via_api(client, student, setup):
    response = client.post("/enrollments", json={"courseId": setup.course.id}, headers=auth_headers(student))
    assert response.status_code == 201
    return response.json()["enrollmentId"]


def start_via_api(client, student, quiz, enrollment_id=None):
    body = {"quizId": quiz.id}
    if enrollment_id is not None:
        body["enrollmentId"] = enrollment_id
    return client.post("/quiz/attempt", json=body, headers=auth_headers(student))


def correct_answers(quiz):
    return [
        {
            "questionId": question.id,
            "selectedOptionIds": [option.id for option in question.options if option.is_correct],
        }
        for question in quiz.questions
    ]


# ---------------------------
# Authentication
# ---------------------------

def test_missing_token_is_unauthenticated(client, setup):
    response = client.post("/quiz/attempt", json={"quizId": setup.quizzes[0].id})

    assert response.status_code == 401
    assert response.json() == {"message": "Not authenticated"}


def test_invalid_token_is_unauthenticated(client, setup):
    response = client.post(
        "/quiz/attempt",
        json={"quizId": setup.quizzes[0].id},
        headers={"Authorization": "Bearer not-a-jwt"},
    )

    assert response.status_code == 401
    assert "message" in response.json()


# ---------------------------
# Attempts
# ---------------------------

def test_start_returns_201_then_200_on_resume(client, student, setup):
    enrollment_id = enroll_via_api(client, student, setup)

    created = start_via_api(client, student, setup.quizzes[0], enrollment_id)
    resumed = start_via_api(client, student, setup.quizzes[0], enrollment_id)

    assert created.status_code == 201
    assert created.json()["attemptNumber"] == 1
    assert created.json()["status"] == "IN_PROGRESS"
    assert resumed.status_code == 200
    assert resumed.json()["id"] == created.json()["id"]


def test_start_accepts_snake_case_body(client, student, setup):
    enrollment_id = enroll_via_api(client, student, setup)

    response = client.post(
        "/quiz/attempt",
        json={"quiz_id": setup.quizzes[0].id, "enrollment_id": enrollment_id},
        headers=auth_headers(student),
    )

    assert response.status_code == 201


def test_start_on_locked_lesson_is_forbidden(client, student, setup):
    enrollment_id = enroll_via_api(client, student, setup)

    response = start_via_api(client, student, setup.quizzes[1], enrollment_id)

    assert response.status_code == 403
    assert "locked" in response.json()["message"]


def test_start_without_quiz_id_is_bad_request(client, student):
    response = client.post("/quiz/attempt", json={}, headers=auth_headers(student))

    assert response.status_code == 400
    assert "message" in response.json()


def test_inspect_hides_correctness_while_in_progress(client, db, student, setup):
    enrollment_id = enroll_via_api(client, student, setup)
    attempt_id = start_via_api(client, student, setup.quizzes[0], enrollment_id).json()["id"]

    response = client.get(f"/quiz/attempt/{attempt_id}", headers=auth_headers(student))

    assert response.status_code == 200
    body = response.json()
    assert body["remainingSeconds"] == 20 * 60
    question = body["quiz"]["questions"][0]
    assert set(question["options"][0]) == {"id", "text"}
    assert question["explanation"] is None
    assert body["quiz"]["timeLimitMinutes"] == 20


def test_inspect_after_time_limit_omits_remaining_seconds(client, clock, student, setup):
    enrollment_id = enroll_via_api(client, student, setup)
    attempt_id = start_via_api(client, student, setup.quizzes[0], enrollment_id).json()["id"]
    clock.advance(seconds=1300)

    response = client.get(f"/quiz/attempt/{attempt_id}", headers=auth_headers(student))

    body = response.json()
    assert body["status"] == "FAILED"
    assert body["durationSeconds"] == 1300
    assert "remainingSeconds" not in body


def test_inspect_by_other_student_is_forbidden(client, db, student, setup):
    enrollment_id = enroll_via_api(client, student, setup)
    attempt_id = start_via_api(client, student, setup.quizzes[0], enrollment_id).json()["id"]
    other = make_user(db, "Curious Student")

    response = client.get(f"/quiz/attempt/{attempt_id}", headers=auth_headers(other))

    assert response.status_code == 403


def test_inspect_shows_sanitized_metadata(client, db, student, setup):
    quiz = setup.quizzes[0]
    add_question(
        db,
        quiz,
        QuestionType.CLOZE,
        {"parts": [{"kind": "text", "value": "Water is "}, {"kind": "blank", "answer": "H2O"}]},
        order=3,
    )
    enrollment_id = enroll_via_api(client, student, setup)
    attempt_id = start_via_api(client, student, quiz, enrollment_id).json()["id"]

    body = client.get(f"/quiz/attempt/{attempt_id}", headers=auth_headers(student)).json()

    cloze = body["quiz"]["questions"][2]
    assert cloze["metadata"] == {"parts": [{"kind": "text", "value": "Water is "}, {"kind": "blank"}]}


def test_submit_grades_and_unlocks_next_lesson(client, db, student, setup):
    quiz = setup.quizzes[0]
    enrollment_id = enroll_via_api(client, student, setup)
    attempt_id = start_via_api(client, student, quiz, enrollment_id).json()["id"]

    response = client.post(
        "/quiz/submit",
        json={"attemptId": attempt_id, "answers": correct_answers(quiz)},
        headers=auth_headers(student),
    )

    assert response.status_code == 200
    assert response.json() == {"scorePercent": 100, "correctCount": 2, "totalQuestions": 2, "passed": True}

    progress = client.get(f"/enrollments/{enrollment_id}/progress", headers=auth_headers(student)).json()
    assert [lesson["status"] for lesson in progress["lessons"]] == ["COMPLETED", "UNLOCKED"]
    assert progress["currentLessonId"] == setup.lessons[1].id
    assert progress["progressPercent"] == 50
    assert progress["finalQuizStartable"] is False


def test_double_submit_conflicts(client, student, setup):
    quiz = setup.quizzes[0]
    enrollment_id = enroll_via_api(client, student, setup)
    attempt_id = start_via_api(client, student, quiz, enrollment_id).json()["id"]
    body = {"attemptId": attempt_id, "answers": correct_answers(quiz)}

    client.post("/quiz/submit", json=body, headers=auth_headers(student))
    response = client.post("/quiz/submit", json=body, headers=auth_headers(student))

    assert response.status_code == 409
    assert response.json() == {"message": "This attempt is already finished"}


def test_final_quiz_returns_certificate(client, student, setup):
    enrollment_id = enroll_via_api(client, student, setup)
    for quiz in setup.quizzes + [setup.final]:
        attempt_id = start_via_api(client, student, quiz, enrollment_id).json()["id"]
        response = client.post(
            "/quiz/submit",
            json={"attemptId": attempt_id, "answers": correct_answers(quiz)},
            headers=auth_headers(student),
        )

    certificate = response.json()["certificate"]
    assert certificate["finalScore"] == 100
    assert len(certificate["uuid"]) == 36

    progress = client.get(f"/enrollments/{enrollment_id}/progress", headers=auth_headers(student)).json()
    assert progress["status"] == "COMPLETED"
    assert progress["currentLessonId"] is None
    assert progress["progressPercent"] == 100


# ---------------------------
# Enrollments
# ---------------------------

def test_progress_of_someone_else_is_not_found(client, db, student, setup):
    enrollment_id = enroll_via_api(client, student, setup)
    other = make_user(db, "Nosy Student")

    response = client.get(f"/enrollments/{enrollment_id}/progress", headers=auth_headers(other))

    assert response.status_code == 404


def test_restart_resets_progress(client, student, setup):
    quiz = setup.quizzes[0]
    enrollment_id = enroll_via_api(client, student, setup)
    attempt_id = start_via_api(client, student, quiz, enrollment_id).json()["id"]
    client.post(
        "/quiz/submit",
        json={"attemptId": attempt_id, "answers": correct_answers(quiz)},
        headers=auth_headers(student),
    )

    response = client.post(f"/me/enrollments/{enrollment_id}/restart", headers=auth_headers(student))

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert response.json()["courseId"] == setup.course.id
    progress = client.get(f"/enrollments/{enrollment_id}/progress", headers=auth_headers(student)).json()
    assert [lesson["status"] for lesson in progress["lessons"]] == ["UNLOCKED", "LOCKED"]


def test_backfill_requires_admin(client, db, student, setup):
    response = client.post(f"/admin/lessons/{setup.lessons[0].id}/backfill-progress", headers=auth_headers(student))

    assert response.status_code == 403


def test_backfill_as_admin(client, db, student, setup):
    enroll_via_api(client, student, setup)
    admin = make_user(db, "Site Admin", role=Role.ADMIN)

    response = client.post(f"/admin/lessons/{setup.lessons[0].id}/backfill-progress", headers=auth_headers(admin))

    assert response.status_code == 200
    assert response.json() == {"lessonId": setup.lessons[0].id, "created": 0}


# ---------------------------
# Certificates
# ---------------------------

def test_certificate_retry_requires_admin(client, student):
    response = client.post("/admin/certificates/retry", headers=auth_headers(student))

    assert response.status_code == 403


def test_certificate_retry_issues_failed_certificates(client, db, student, setup, monkeypatch):
    enrollment_id = enroll_via_api(client, student, setup)

    def fail_issue(self, attempt_id, expected_user_id=None):
        raise RuntimeError("certificate store offline")

    with monkeypatch.context() as patch:
        patch.setattr(CertificationTrigger, "issue", fail_issue)
        for quiz in setup.quizzes + [setup.final]:
            attempt_id = start_via_api(client, student, quiz, enrollment_id).json()["id"]
            response = client.post(
                "/quiz/submit",
                json={"attemptId": attempt_id, "answers": correct_answers(quiz)},
                headers=auth_headers(student),
            )
    assert response.json()["passed"] is True
    assert "certificate" not in response.json()

    admin = make_user(db, "Certificate Admin", role=Role.ADMIN)
    response = client.post("/admin/certificates/retry", headers=auth_headers(admin))

    assert response.status_code == 200
    assert response.json() == {"issued": 1}
