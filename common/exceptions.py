from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import (
    APIException,
    AuthenticationFailed,
    MethodNotAllowed,
    NotAcceptable,
    NotAuthenticated,
    NotFound,
    ParseError,
    PermissionDenied,
    Throttled,
    UnsupportedMediaType,
    ValidationError,
)
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)

SERVER_ERROR_MESSAGE = "An unexpected error occurred."


class DomainError(APIException):
    """Business rule failure that carries structured error details alongside the message."""

    def __init__(self, detail=None, code=None, errors=None):
        super().__init__(detail=detail, code=code)
        self.errors = errors


class PaymentMismatchError(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Payment breakdown does not add up to the grand total."
    default_code = "payment_mismatch"


class InsufficientStockError(DomainError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Insufficient stock."
    default_code = "insufficient_stock"


class InvalidStateError(DomainError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "The requested transition is not allowed from the current state."
    default_code = "invalid_state"


# Stable codes the POS frontend switches on; DomainError subclasses use their default_code.
ERROR_CODES: tuple[tuple[type[Exception], str], ...] = (
    (ValidationError, "validation_error"),
    (NotAuthenticated, "not_authenticated"),
    (AuthenticationFailed, "authentication_failed"),
    (PermissionDenied, "permission_denied"),
    (NotFound, "not_found"),
    (MethodNotAllowed, "method_not_allowed"),
    (NotAcceptable, "not_acceptable"),
    (UnsupportedMediaType, "unsupported_media_type"),
    (ParseError, "parse_error"),
    (Throttled, "throttled"),
)


def envelope(code: str, message: str, errors: Any, status_code: int) -> dict[str, Any]:
    return {"code": code, "message": message, "errors": errors, "status": status_code}


def custom_exception_handler(exc: Exception, context: dict[str, Any]) -> Response:
    if isinstance(exc, Http404):
        exc = NotFound()
    elif isinstance(exc, DjangoPermissionDenied):
        exc = PermissionDenied()

    response = drf_exception_handler(exc, context)
    if response is None:
        view = context.get("view")
        logger.exception("Unhandled API exception in %s", view.__class__.__name__ if view else "unknown")
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
        return Response(envelope("internal_server_error", SERVER_ERROR_MESSAGE, None, code), status=code)

    if isinstance(exc, DomainError):
        logger.info("domain_error code=%s status=%s detail=%s", exc.default_code, response.status_code, exc.detail)

    response.data = envelope(
        _error_code(exc),
        _error_message(exc, response.data),
        getattr(exc, "errors", None) or _error_details(response.data),
        response.status_code,
    )
    return response


def _error_code(exc: Exception) -> str:
    if isinstance(exc, DomainError):
        return exc.default_code
    for exception_type, code in ERROR_CODES:
        if isinstance(exc, exception_type):
            return code
    return str(getattr(exc, "default_code", "api_error"))


def _error_message(exc: Exception, data: Any) -> str:
    if isinstance(exc, ValidationError):
        return "Validation failed."
    if isinstance(data, Mapping) and data.get("detail"):
        return str(data["detail"])
    if isinstance(data, str) and data:
        return data
    if isinstance(exc, Throttled):
        return "Request was throttled."
    return str(getattr(exc, "detail", "Request failed."))


def _error_details(data: Any) -> Any:
    if isinstance(data, Mapping):
        return None if set(data) == {"detail"} else data
    if isinstance(data, Sequence) and not isinstance(data, str):
        return data
    return None
