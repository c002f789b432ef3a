"""
Error taxonomy shared by services and the HTTP layer.

Services raise these; the API maps ``status_code``/``error_type`` onto the
JSON error envelope. Lower-level storage failures are chained with
``raise ... from exc`` so the original cause stays attached.
"""


class ExamError(Exception):
    status_code = 500
    error_type = "internal_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.error_type)
        self.message = message or self.error_type


class InvalidArgument(ExamError):
    status_code = 400
    error_type = "invalid_argument"


class Unauthenticated(ExamError):
    status_code = 401
    error_type = "unauthenticated"


class NotFound(ExamError):
    status_code = 404
    error_type = "not_found"


class AlreadyExists(ExamError):
    status_code = 409
    error_type = "already_exists"


class FailedPrecondition(ExamError):
    """The record is in a state that forbids the operation, e.g. already completed."""
    status_code = 409
    error_type = "failed_precondition"


class Internal(ExamError):
    status_code = 500
    error_type = "internal_error"


class DeadlineExceeded(ExamError):
    status_code = 504
    error_type = "deadline_exceeded"
