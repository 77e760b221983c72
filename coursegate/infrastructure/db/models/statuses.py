# Values stored in the String status/type columns.


class Role:
    ADMIN = "ADMIN"
    INSTRUCTOR = "INSTRUCTOR"
    STUDENT = "STUDENT"

    STAFF = (ADMIN, INSTRUCTOR)


class AttemptStatus:
    IN_PROGRESS = "IN_PROGRESS"
    PASSED = "PASSED"
    FAILED = "FAILED"

    TERMINAL = (PASSED, FAILED)


class ProgressStatus:
    LOCKED = "LOCKED"
    UNLOCKED = "UNLOCKED"
    COMPLETED = "COMPLETED"


class EnrollmentStatus:
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


class OutboxStatus:
    PENDING = "PENDING"
    DONE = "DONE"
    FAILED = "FAILED"


class QuestionType:
    SINGLE_CHOICE = "SINGLE_CHOICE"
    MULTI_SELECT = "MULTI_SELECT"
    TRUE_FALSE = "TRUE_FALSE"
    NUMERICAL = "NUMERICAL"
    MATCHING = "MATCHING"
    CLOZE = "CLOZE"
    DRAG_DROP_IMAGE = "DRAG_DROP_IMAGE"
    DRAG_DROP_TEXT = "DRAG_DROP_TEXT"

    CHOICE_TYPES = (SINGLE_CHOICE, MULTI_SELECT, TRUE_FALSE)
