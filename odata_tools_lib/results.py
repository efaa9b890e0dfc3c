"""
Uniform result envelope returned for every tool invocation.
"""

import json
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, Dict, List, Optional, Tuple, Type
import httpx
from pydantic import BaseModel, Field

from . import constants
from .exceptions import ToolStateError, ToolTimeoutError, ToolValidationError

# Checked in order; the first matching exception type decides the status code.
EXCEPTION_STATUS_MAP: List[Tuple[Tuple[Type[BaseException], ...], int]] = [
    ((ToolValidationError,), 400),
    ((NotImplementedError,), 501),
    ((TimeoutError, httpx.TimeoutException), 408),
    ((PermissionError,), 401),
    ((ValueError, TypeError, KeyError), 400),
    ((ToolStateError,), 409),
]


class ToolResult(BaseModel):
    is_success: bool
    status_code: int = 200
    data: Any = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    warnings: List[str] = []
    correlation_id: Optional[str] = None
    completed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    execution_duration_ms: float = 0.0

    @classmethod
    def success(cls, data: Any = None, status_code: int = 200, warnings: Optional[List[str]] = None) -> "ToolResult":
        return cls(is_success=True, data=data, status_code=status_code, warnings=warnings or [])

    @classmethod
    def error(cls, message: str, code: Optional[str] = None, status_code: int = 500) -> "ToolResult":
        return cls(is_success=False, error_message=message, error_code=code, status_code=status_code)

    @classmethod
    def not_found(cls, message: str = "The requested resource was not found.") -> "ToolResult":
        return cls.error(message, constants.NOT_FOUND, 404)

    @classmethod
    def unauthorized(cls, message: str = "The caller is not authorized to use this tool.") -> "ToolResult":
        return cls.error(message, constants.UNAUTHORIZED, 401)

    @classmethod
    def validation_error(cls, message: str) -> "ToolResult":
        return cls.error(message, constants.VALIDATION_ERROR, 400)

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ToolResult":
        if isinstance(exc, ToolValidationError):
            return cls.validation_error(str(exc))
        if isinstance(exc, ToolTimeoutError):
            code = constants.CANCELLED if exc.cancelled else constants.TIMEOUT
            return cls.error(str(exc), code, 408)
        status_code = 500
        for exc_types, mapped_status in EXCEPTION_STATUS_MAP:
            if isinstance(exc, exc_types):
                status_code = mapped_status
                break
        return cls.error(str(exc) or type(exc).__name__, type(exc).__name__, status_code)

    def to_dict(self) -> Dict[str, Any]:
        """Wire form with camelCase keys; optional members are omitted when unset."""
        payload: Dict[str, Any] = {
            "isSuccess": self.is_success,
            "statusCode": self.status_code,
            "correlationId": self.correlation_id,
            "completedAt": self.completed_at.isoformat(),
            "executionDurationMs": round(self.execution_duration_ms, 3),
        }
        if self.data is not None:
            payload["data"] = self.data
        if self.error_message is not None:
            payload["errorMessage"] = self.error_message
        if self.error_code is not None:
            payload["errorCode"] = self.error_code
        if self.warnings:
            payload["warnings"] = self.warnings
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, default=str)


def status_text(status_code: int) -> str:
    """Error code used for downstream failures with no dedicated code."""
    try:
        return HTTPStatus(status_code).name
    except ValueError:
        return f"HTTP_{status_code}"


def parse_odata_error(response: httpx.Response) -> str:
    """Attempt to extract a meaningful error message from an OData error response."""
    fallback = f"HTTP {response.status_code}: {response.reason_phrase or status_text(response.status_code)}"
    if not response.content:
        return fallback
    try:
        data = response.json()
    except ValueError:
        return f"{fallback} - {response.text[:500]}"

    error = data.get("error") if isinstance(data, dict) else None
    if not isinstance(error, dict):
        return fallback

    message = error.get("message")
    if isinstance(message, dict):
        message = message.get("value")
    if not message:
        return fallback

    parts = [str(message)]
    if error.get("code"):
        parts.append(f"(code: {error['code']})")
    inner = error.get("innererror")
    if isinstance(inner, dict) and inner.get("message"):
        parts.append(f"Inner error: {inner['message']}")
    return " ".join(parts)


def result_from_response(response: httpx.Response, action: str, data: Any = None,
                         warnings: Optional[List[str]] = None) -> ToolResult:
    """Map a downstream response onto the result taxonomy."""
    status_code = response.status_code
    if 200 <= status_code < 300:
        return ToolResult.success(data, status_code=status_code, warnings=warnings)

    detail = parse_odata_error(response)
    if status_code == 401:
        result = ToolResult.unauthorized(f"Not authorized to {action}: {detail}")
    elif status_code == 404:
        result = ToolResult.not_found(f"Failed to {action}: not found. {detail}")
    elif status_code == 412:
        result = ToolResult.error(
            f"Failed to {action}: the entity was modified by another request (ETag mismatch). {detail}",
            constants.ETAG_MISMATCH, 412,
        )
    elif status_code == 428:
        result = ToolResult.error(
            f"Failed to {action}: the service requires an ETag (If-Match) for this operation. {detail}",
            constants.ETAG_REQUIRED, 428,
        )
    else:
        result = ToolResult.error(f"Failed to {action}: {detail}", status_text(status_code), status_code)
    if warnings:
        result.warnings.extend(warnings)
    return result
