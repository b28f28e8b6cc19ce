"""Custom exception classes for the perception survey backend"""

from typing import List, Optional


class SurveyBackendException(Exception):
    """Base exception for the survey backend"""

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class InputValidationError(SurveyBackendException):
    """Raised when a request payload fails its input schema"""

    def __init__(self, errors: List[str], message: Optional[str] = None):
        self.errors = list(errors)
        super().__init__(message or "; ".join(self.errors) or "invalid input")


class AuthenticationError(SurveyBackendException):
    """Raised when a (session_id, cookie_hash) pair does not belong to one person.

    The message is deliberately the same for every failure cause.
    """

    def __init__(self, message: str = "invalid authentication or session_id not present"):
        super().__init__(message)


class OperationFailedError(SurveyBackendException):
    """Raised when a core operation completes without producing a result"""

    def __init__(self, message: str = "operation failed"):
        super().__init__(message)
