class CourseFlowError(Exception):
    """
    Base class for expected failures of the quiz / progression flow.

    Each subclass maps onto one HTTP status; routers translate them into
    HTTPException with the message as the response body.
    """

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CourseFlowError):
    status_code = 400


class Forbidden(CourseFlowError):
    status_code = 403


class NotFound(CourseFlowError):
    status_code = 404


class Conflict(CourseFlowError):
    status_code = 409
