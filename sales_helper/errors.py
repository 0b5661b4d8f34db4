"""Application error hierarchy.

Every error carries an HTTP status and a stable ``code``; the API layer
renders them as ``{"ok": false, "code", "message", "data"}``.
"""

from __future__ import annotations

from typing import Any, Optional


class AppError(Exception):
    status_code = 500
    code = "ERR_APP"

    def __init__(self, message: str, data: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.data = data

    def to_dict(self) -> dict:
        return {
            "ok": False,
            "code": self.code,
            "message": self.message,
            "data": self.data,
        }


class ValidationError(AppError):
    status_code = 422
    code = "ERR_VALIDATION"


class NotFoundError(AppError):
    status_code = 404
    code = "ERR_NOT_FOUND"

    def __init__(self, message: str = "Resource not found", data: Optional[Any] = None):
        super().__init__(message, data)


class RequestLocked(AppError):
    """Mutation or deletion attempted in a status that forbids it."""

    status_code = 409
    code = "ERR_REQUEST_LOCKED"


class InvalidTransition(AppError):
    status_code = 409
    code = "ERR_INVALID_TRANSITION"


class ExternalError(AppError):
    status_code = 502
    code = "ERR_EXTERNAL"


class ShapeError(AppError):
    """A Request, Contact or LineItem value broke its structural invariants.

    Raised at the store boundary; this is a data-integrity bug, never
    something to coerce.
    """

    status_code = 500
    code = "ERR_SHAPE"


# Submission errors


class SubmitError(AppError):
    retryable = False

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["retryable"] = self.retryable
        return body


class SubmitValidationError(SubmitError):
    """Request is not submittable; the CRM was not contacted."""

    status_code = 422
    code = "ERR_VALIDATION"


class NetworkError(SubmitError):
    status_code = 503
    code = "ERR_CRM_NETWORK"
    retryable = True


class CRMTimeoutError(SubmitError):
    status_code = 504
    code = "ERR_CRM_TIMEOUT"
    retryable = True


class RemoteRejection(SubmitError):
    """The CRM answered and refused the deal."""

    status_code = 502
    code = "ERR_CRM_REJECTED"
