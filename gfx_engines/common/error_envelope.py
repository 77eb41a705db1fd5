"""Canonical error envelope for designer HTTP responses.

Standardized structure:
{
  "error": {
    "code": "string",
    "message": "string",
    "http_status": 400,
    "resource_kind": "string | null",
    "details": {}
  }
}
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import HTTPException
from pydantic import BaseModel, Field

from gfx_engines.common.errors import (
    DesignerError,
    NotFoundError,
    PartialSaveError,
    RemoteTimeoutError,
    ValidationError,
)


class ErrorDetail(BaseModel):
    """Canonical error detail structure."""
    code: str
    message: str
    http_status: int
    resource_kind: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)


class ErrorEnvelope(BaseModel):
    """Top-level error envelope returned by designer endpoints."""
    error: ErrorDetail


def build_error_envelope(
    code: str,
    message: str,
    status_code: int = 400,
    resource_kind: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> ErrorEnvelope:
    """Construct an ErrorEnvelope (without raising)."""
    return ErrorEnvelope(
        error=ErrorDetail(
            code=code,
            message=message,
            http_status=status_code,
            resource_kind=resource_kind,
            details=details or {},
        )
    )


def error_response(
    code: str,
    message: str,
    status_code: int = 400,
    resource_kind: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> HTTPException:
    """Construct an HTTPException carrying the canonical envelope.

    Args:
        code: Machine-readable error code (e.g., "designer.not_found")
        message: Human-readable error message
        status_code: HTTP status code (default 400)
        resource_kind: The resource type (element, template, ...)
        details: Additional context dict
    """
    envelope = build_error_envelope(
        code=code,
        message=message,
        status_code=status_code,
        resource_kind=resource_kind,
        details=details,
    )
    return HTTPException(status_code=status_code, detail=envelope.model_dump())


_STATUS_BY_ERROR = (
    (NotFoundError, 404),
    (ValidationError, 422),
    (RemoteTimeoutError, 504),
    (PartialSaveError, 502),
)


def designer_error_response(exc: DesignerError, resource_kind: Optional[str] = None) -> HTTPException:
    """Map a designer error onto the envelope with its HTTP status."""
    status_code = 500
    for err_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, err_type):
            status_code = status
            break
    details: Dict[str, Any] = {}
    if isinstance(exc, PartialSaveError):
        details["failed_steps"] = [s.model_dump() for s in exc.report.failed_steps]
    return error_response(
        code=exc.code,
        message=str(exc),
        status_code=status_code,
        resource_kind=resource_kind,
        details=details,
    )


def not_found_error(resource_kind: str, resource_id: str) -> HTTPException:
    """Missing entity (404)."""
    return error_response(
        code=f"{resource_kind}.not_found",
        message=f"{resource_kind} not found: {resource_id}",
        status_code=404,
        resource_kind=resource_kind,
        details={"id": resource_id},
    )
