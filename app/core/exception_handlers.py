"""
DRF exception handler for application errors.

Registered through ``REST_FRAMEWORK["EXCEPTION_HANDLER"]``. Every failure
leaves the API as ``{"error": "<message>", "error_code": "<CODE>"}``.
"""

import logging

from rest_framework.response import Response
from rest_framework.views import exception_handler

from core.exceptions import BaseApplicationError, http_status_for

logger = logging.getLogger(__name__)


def flatten_error_detail(errors) -> str:
    """Flatten DRF error detail (dict/list/str) into one message."""
    if isinstance(errors, dict):
        for field, messages in errors.items():
            message = flatten_error_detail(messages)
            if field in ("non_field_errors", "detail"):
                return message
            return f"{field}: {message}"
        return ""
    if isinstance(errors, list):
        return flatten_error_detail(errors[0]) if errors else ""
    return str(errors)


def _error_code_for(exc) -> str:
    code = getattr(exc, "default_code", None) or "error"
    return str(code).upper()


def api_exception_handler(exc, context):
    """
    Translate application and DRF errors into ``{"error": ..., "error_code": ...}``.

    BaseApplicationError maps through ``http_status_for``. DRF exceptions
    (validation, authentication, permission, 404, 405, throttling) keep
    the status and headers DRF chose; only the body is reshaped.
    Unhandled exceptions still propagate.
    """
    if isinstance(exc, BaseApplicationError):
        view = context.get("view")
        logger.warning(
            f"Application error in {view.__class__.__name__ if view else 'unknown view'}: {exc}",
            extra={"error_code": exc.error_code, "details": exc.details},
        )
        return Response(exc.to_dict(), status=int(http_status_for(exc)))

    response = exception_handler(exc, context)
    if response is None:
        return None

    response.data = {
        "error": flatten_error_detail(response.data),
        "error_code": _error_code_for(exc),
    }
    return response
