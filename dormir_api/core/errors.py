# dormir-la-haut-api/dormir_api/core/errors.py
from fastapi import HTTPException, status


class AppError(Exception):
    """Expected domain failure carrying the HTTP status it maps to."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_http(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=self.message)


class AuthorizationError(AppError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(AppError):
    # a decision on an already reviewed record is reported as a bad request
    status_code = status.HTTP_400_BAD_REQUEST


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST


class DependencyError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
