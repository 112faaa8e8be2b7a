from typing import List, Optional


class AppError(Exception):
    """Base class for errors that map onto an HTTP status code."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(AppError):
    status_code = 400

    @classmethod
    def from_errors(cls, errors: List[str]) -> "ValidationError":
        return cls("; ".join(errors))


class AuthenticationError(AppError):
    status_code = 401


class PermissionDeniedError(AppError):
    status_code = 403


class NotFoundError(AppError):
    status_code = 404


class ConflictError(AppError):
    status_code = 409
