"""
Custom DRF exception handler for consistent error responses.

Every error response will have the shape:
{
    "success": false,
    "error": "machine_readable_code or human-readable message",
    "message": "Human-readable error message",   // voucher engine errors
    // optional field-level errors for validation
    "errors": { "field_name": ["..."] }
}
"""

import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from .exceptions import DeviceOfflineError, InvalidTransition, VoucherError

logger = logging.getLogger(__name__)

VOUCHER_ERROR_STATUS = {
    "invalid_input": status.HTTP_400_BAD_REQUEST,
    "voucher_not_found": status.HTTP_404_NOT_FOUND,
    "voucher_unavailable": status.HTTP_409_CONFLICT,
}


def _voucher_error_response(exc):
    if isinstance(exc, DeviceOfflineError):
        http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    elif isinstance(exc, InvalidTransition):
        http_status = status.HTTP_409_CONFLICT
    else:
        http_status = VOUCHER_ERROR_STATUS.get(exc.code, status.HTTP_502_BAD_GATEWAY)

    return Response(
        {"success": False, "error": exc.code, "message": exc.message},
        status=http_status,
    )


def custom_exception_handler(exc, context):
    """
    Wrap the default DRF exception handler to produce consistent
    { success, error, errors? } responses, and map voucher engine
    exceptions to HTTP statuses.
    """
    if isinstance(exc, VoucherError):
        view = context.get("view")
        logger.warning(
            f"{type(exc).__name__} in {getattr(view, '__name__', view)}: {exc.message}"
        )
        return _voucher_error_response(exc)

    response = drf_exception_handler(exc, context)

    if response is None:
        # DRF didn't handle it (e.g. unhandled server error)
        return response

    data = response.data

    # DRF returns `{"detail": "..."}` for auth/permission/throttle errors
    if isinstance(data, dict) and "detail" in data:
        response.data = {
            "success": False,
            "error": str(data["detail"]),
        }

    # DRF validation: `{"field": ["msg", ...], ...}` (no "detail" key)
    elif isinstance(data, dict) and "success" not in data:
        error_messages = []
        for field, msgs in data.items():
            if isinstance(msgs, list):
                for msg in msgs:
                    error_messages.append(f"{field}: {msg}")
            else:
                error_messages.append(f"{field}: {msgs}")

        response.data = {
            "success": False,
            "error": "invalid_input",
            "message": (
                "; ".join(error_messages) if error_messages else "Validation error"
            ),
            "errors": data,
        }

    # DRF can also return a list of errors (rare)
    elif isinstance(data, list):
        response.data = {
            "success": False,
            "error": "; ".join(str(e) for e in data),
        }

    return response
