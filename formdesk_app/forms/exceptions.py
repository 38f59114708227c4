"""
Error taxonomy for form definition and response processing.

Every error is a DRF ``APIException`` so API views can let them propagate and
the framework renders the status code and detail. Services raise these; the
validation and guard functions return results instead of raising.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

from rest_framework import status
from rest_framework.exceptions import APIException

if TYPE_CHECKING:
    from .fields import Violation


class FormError(APIException):
    """Base class for form engine errors."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "The request could not be processed."
    default_code = "form_error"


class ValidationError(FormError):
    """A schema or submission broke one or more structural rules."""

    default_detail = "Validation failed."
    default_code = "invalid"

    def __init__(self, violations: Iterable[Violation] = (), detail=None):
        self.violations = list(violations)
        if detail is None:
            detail = {
                "errors": [v.message for v in self.violations],
                "violations": [v.as_dict() for v in self.violations],
            }
        super().__init__(detail=detail)
        # Keep plain values; DRF would stringify a null field name
        self.detail = detail


class AuthorizationError(FormError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You do not have permission to manage this form."
    default_code = "forbidden"


class NotFoundError(FormError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found."
    default_code = "not_found"


class ConflictError(FormError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "The request conflicts with the current state."
    default_code = "conflict"


class WindowClosedError(FormError):
    """The form is not published or the request is outside its window."""

    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Form not available."
    default_code = "window_closed"
