"""
Ledger API errors.

Anything thrown by the ledger layer is converted once, at the boundary, into a
LedgerError. Callers branch on LedgerError.fatal rather than on exception
types.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional

import httpx

# Authentication, validation, not-found, rate-limit and server errors abort a run
FATAL_STATUS_CODES = frozenset({400, 401, 403, 404, 429, 500})


class LedgerAPIError(Exception):
    """Exception raised by the ledger API client."""
    def __init__(self, message: str, status_code: int = 0, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


@dataclass(frozen=True)
class LedgerError:
    """Canonical form of any ledger failure."""
    fatal: bool
    message: str
    status: Optional[int] = None
    name: Optional[str] = None
    detail: Optional[str] = None

    def to_exception(self) -> LedgerAPIError:
        """Exception carrying the original status code, for propagation."""
        return LedgerAPIError(
            self.message,
            status_code=self.status or 0,
            details={"name": self.name, "detail": self.detail},
        )

    def describe(self) -> str:
        if self.status:
            return f"{self.status} {self.message}"
        return self.message


def _parse_status(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def _from_body(body: Mapping[str, Any], status: Optional[int] = None) -> LedgerError:
    """Error bodies look like {"error": {"id": "429", "name": ..., "detail": ...}}."""
    error = body.get("error", body)
    if not isinstance(error, Mapping):
        error = {"detail": str(error)}

    parsed_status = status if status is not None else _parse_status(error.get("id"))
    name = error.get("name")
    detail = error.get("detail")
    message = detail or name or "Ledger API error"

    return LedgerError(
        fatal=parsed_status in FATAL_STATUS_CODES,
        message=str(message),
        status=parsed_status,
        name=str(name) if name is not None else None,
        detail=str(detail) if detail is not None else None,
    )


def normalize_ledger_error(error: Any) -> LedgerError:
    """
    Convert an exception, an API error body or a plain string into a LedgerError.

    Status codes are read from, in order: LedgerAPIError.status_code,
    httpx response status, a `status`/`status_code` attribute, or the
    error body's `id` field.
    """
    if isinstance(error, LedgerError):
        return error

    if isinstance(error, LedgerAPIError):
        status = error.status_code or None
        if isinstance(error.details, Mapping) and "error" in error.details:
            parsed = _from_body(error.details, status)
            return LedgerError(
                fatal=parsed.fatal,
                message=str(error),
                status=parsed.status,
                name=parsed.name,
                detail=parsed.detail,
            )
        return LedgerError(
            fatal=status in FATAL_STATUS_CODES,
            message=str(error),
            status=status,
            name=type(error).__name__,
            detail=str(error.details) if error.details is not None else None,
        )

    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return LedgerError(
            fatal=status in FATAL_STATUS_CODES,
            message=str(error),
            status=status,
            name=type(error).__name__,
        )

    if isinstance(error, BaseException):
        status = _parse_status(
            getattr(error, "status_code", None) or getattr(error, "status", None)
        )
        return LedgerError(
            fatal=status in FATAL_STATUS_CODES,
            message=str(error) or type(error).__name__,
            status=status,
            name=type(error).__name__,
        )

    if isinstance(error, Mapping):
        return _from_body(error)

    return LedgerError(fatal=False, message=str(error))
