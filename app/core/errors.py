# app/core/errors.py
from fastapi import status


class AppError(Exception):
    """Base class for errors that map onto an HTTP status code."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class AuthenticationError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Resource already exists"


class DataStoreError(AppError):
    """The metadata store could not complete a request."""
    default_message = "Data store request failed"


class StorageError(AppError):
    """The blob store could not complete a request."""
    default_message = "Storage request failed"
