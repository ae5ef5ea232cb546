import logging

from django.db import DatabaseError
from rest_framework import exceptions, status
from rest_framework.views import exception_handler

from core.services.base_service import (
    ServiceError, ValidationError, AuthorizationError, NotFoundError, ConflictError,
)
from .response import APIResponse

logger = logging.getLogger(__name__)


def handle_service_error(e: Exception):
    if isinstance(e, ValidationError):
        return APIResponse.error(e.message, e.code, e.details, status.HTTP_400_BAD_REQUEST)
    elif isinstance(e, AuthorizationError):
        logger.warning("Authorization denied: %s", e.message)
        return APIResponse.forbidden(e.message, e.details)
    elif isinstance(e, NotFoundError):
        return APIResponse.not_found(e.message, e.details)
    elif isinstance(e, ConflictError):
        logger.warning("Conflict [%s]: %s", e.code, e.message)
        return APIResponse.conflict(e.message, e.code, e.details)
    elif isinstance(e, ServiceError):
        logger.error("Service error [%s]: %s", e.code, e.message)
        return APIResponse.error(e.message, e.code, e.details, e.status_code)
    elif isinstance(e, DatabaseError):
        logger.exception("Storage unavailable")
        return APIResponse.error(
            "Service temporarily unavailable",
            "SERVICE_UNAVAILABLE",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE
        )
    else:
        logger.exception("Unhandled error")
        return APIResponse.error(
            "Internal server error",
            "SERVER_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        )


def api_exception_handler(exc, context):
    """Wrap DRF's own errors (auth, parsing, method) in the API envelope."""
    response = exception_handler(exc, context)
    if response is None:
        return handle_service_error(exc)

    if isinstance(exc, (exceptions.NotAuthenticated, exceptions.AuthenticationFailed)):
        code = "UNAUTHORIZED"
        response.status_code = status.HTTP_401_UNAUTHORIZED
    elif isinstance(exc, exceptions.PermissionDenied):
        code = "FORBIDDEN"
    elif isinstance(exc, exceptions.ParseError):
        code = "VALIDATION_ERROR"
    else:
        code = getattr(exc, "default_code", "ERROR").upper()

    detail = response.data.get("detail") if isinstance(response.data, dict) else None
    response.data = {
        "success": False,
        "message": str(detail) if detail else "Request failed",
        "error_code": code,
        "details": {} if detail else response.data,
    }
    return response
