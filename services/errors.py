"""
Domain errors raised by the service layer.

Each error carries the HTTP status it maps to; `main.py` registers a single
handler that turns any of them into a `{"detail": ...}` response.
"""
from fastapi import status


class ExpenseAppError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(ExpenseAppError):
    status_code = status.HTTP_404_NOT_FOUND


class Forbidden(ExpenseAppError):
    status_code = status.HTTP_403_FORBIDDEN


class InvalidState(ExpenseAppError):
    status_code = status.HTTP_400_BAD_REQUEST


class ConcurrentModification(InvalidState):
    status_code = status.HTTP_409_CONFLICT


class ValidationError(ExpenseAppError):
    status_code = status.HTTP_400_BAD_REQUEST


class UpstreamUnavailable(ExpenseAppError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
