# app/core/errors.py
from __future__ import annotations

from typing import Any, Optional


class AppError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"


class InvalidArgumentError(ValidationError):
    code = "INVALID_ARGUMENT"


class AuthenticationError(AppError):
    status_code = 401
    code = "UNAUTHORIZED"


class AuthorizationError(AppError):
    status_code = 403
    code = "FORBIDDEN"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"


class StorageError(AppError):
    status_code = 500
    code = "STORAGE_ERROR"


class MailDeliveryError(AppError):
    # the reset token is already persisted when this is raised
    status_code = 502
    code = "MAIL_DELIVERY_FAILED"
