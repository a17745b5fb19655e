"""Standardized API error format.

Every error response has the shape::

    {"type": "<category>", "errors": [{"code": ..., "detail": ..., ...}]}

Fulfillment domain errors additionally expose ``message`` (the text the
mobile app shows) and ``retryable`` (whether it offers a retry button).
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import structlog
from rest_framework import exceptions
from rest_framework.response import Response
from rest_framework.views import exception_handler

from shared.domain.errors import FulfillmentError

logger = structlog.get_logger(__name__)


def standard_exception_handler(exc: Exception, context: Dict[str, Any]) -> Optional[Response]:
    if isinstance(exc, FulfillmentError):
        logger.warning(
            "api.domain_error",
            code=exc.code,
            detail=str(exc),
            view=context.get("view").__class__.__name__,
        )
        return Response(
            {"type": "domain_error", "errors": [exc.as_dict()]},
            status=exc.status_code,
        )

    response = exception_handler(exc, context)
    if response is None:
        return None

    response.data = {
        "type": _error_type(exc),
        "errors": _flatten(response.data),
    }
    return response


def _error_type(exc: Exception) -> str:
    if isinstance(exc, exceptions.ValidationError):
        return "validation_error"
    if isinstance(exc, (exceptions.NotAuthenticated, exceptions.AuthenticationFailed)):
        return "authentication_error"
    if isinstance(exc, exceptions.PermissionDenied):
        return "permission_error"
    if isinstance(exc, exceptions.NotFound):
        return "not_found"
    if isinstance(exc, exceptions.Throttled):
        return "throttled"
    return "api_error"


def _flatten(data: Any, field: Optional[str] = None) -> List[Dict[str, Any]]:
    """Turn DRF's nested error payloads into a flat list of entries."""
    if isinstance(data, dict):
        if "detail" in data and len(data) == 1:
            return _flatten(data["detail"], field)
        errors: List[Dict[str, Any]] = []
        for key, value in data.items():
            errors.extend(_flatten(value, key if field is None else f"{field}.{key}"))
        return errors
    if isinstance(data, list):
        errors = []
        for item in data:
            errors.extend(_flatten(item, field))
        return errors

    entry: Dict[str, Any] = {
        "code": getattr(data, "code", "error"),
        "detail": str(data),
    }
    if field is not None:
        entry["field"] = field
    return [entry]

