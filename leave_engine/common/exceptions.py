"""Custom exceptions and RFC 7807 Problem Detail error handlers."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

BASE_ERROR_URI = "https://leave-engine.local/errors"


# ── Exception hierarchy ─────────────────────────────────────────────

class AppException(Exception):
    """Base for all application exceptions → RFC 7807 JSON."""

    def __init__(
        self,
        status_code: int,
        error_type: str,
        title: str,
        detail: str,
        errors: Optional[dict[str, Any]] = None,
    ) -> None:
        self.status_code = status_code
        self.error_type = error_type
        self.title = title
        self.detail = detail
        self.errors = errors
        super().__init__(detail)


class NotFoundException(AppException):
    """404 — entity not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(
            status_code=404,
            error_type="not-found",
            title=f"{entity_type} Not Found",
            detail=f"{entity_type} with id '{entity_id}' does not exist.",
        )


class ForbiddenException(AppException):
    """403 — insufficient permissions."""

    def __init__(
        self,
        detail: str = "You do not have permission to perform this action.",
    ) -> None:
        super().__init__(
            status_code=403,
            error_type="forbidden",
            title="Forbidden",
            detail=detail,
        )


class ValidationException(AppException):
    """422 — business-logic validation failures."""

    def __init__(self, errors: dict[str, list[str]]) -> None:
        super().__init__(
            status_code=422,
            error_type="validation-error",
            title="Validation Error",
            detail="One or more fields failed validation.",
            errors=errors,
        )


class SubmissionRejected(AppException):
    """422 — a leave submission failed one or more leave rules.

    ``errors`` maps each violated rule code to its messages so that every
    problem is reported in a single response.
    """

    def __init__(self, violations: list) -> None:
        errors: dict[str, list[str]] = {}
        for violation in violations:
            errors.setdefault(violation.code.value, []).append(violation.message)
        super().__init__(
            status_code=422,
            error_type="leave-rules-violated",
            title="Leave Request Rejected",
            detail=f"The leave request violates {len(errors)} rule(s).",
            errors=errors,
        )
        self.violations = violations


class InvalidTransition(AppException):
    """409 (or 403 for the wrong actor) — request state change not allowed.

    No side effect has happened when this is raised.
    """

    def __init__(
        self,
        request_id: Any,
        current_status: Any,
        action: str,
        *,
        detail: Optional[str] = None,
        status_code: int = 409,
    ) -> None:
        status_value = getattr(current_status, "value", current_status)
        super().__init__(
            status_code=status_code,
            error_type="invalid-transition",
            title="Invalid Transition",
            detail=detail or (
                f"Cannot {action} leave request '{request_id}': "
                f"it is already {status_value}."
            ),
            errors={"status": [status_value]},
        )
        self.request_id = request_id
        self.current_status = current_status
        self.action = action


# ── Internal (never rendered directly) ─────────────────────────────

class InsufficientBalance(Exception):
    """Raised by the ledger when a reservation exceeds the remaining amount."""

    def __init__(self, requested: Decimal, remaining: Decimal) -> None:
        self.requested = requested
        self.remaining = remaining
        super().__init__(
            f"Requested {requested} day(s) but only {remaining} remaining."
        )


# ── RFC 7807 builder ────────────────────────────────────────────────

def _build_problem_detail(exc: AppException, request: Request) -> dict[str, Any]:
    body: dict[str, Any] = {
        "type": f"{BASE_ERROR_URI}/{exc.error_type}",
        "title": exc.title,
        "status": exc.status_code,
        "detail": exc.detail,
        "instance": str(request.url.path),
    }
    if exc.errors:
        body["errors"] = exc.errors
    return body


# ── FastAPI handlers ────────────────────────────────────────────────

async def _handle_app_exception(
    request: Request,
    exc: AppException,
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_build_problem_detail(exc, request),
        media_type="application/problem+json",
    )


async def _handle_validation_error(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    field_errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = err.get("loc", ())
        name = (
            ".".join(str(p) for p in loc[1:])
            if len(loc) > 1
            else str(loc[0]) if loc else "unknown"
        )
        field_errors.setdefault(name, []).append(err.get("msg", "Invalid value"))

    return JSONResponse(
        status_code=422,
        content={
            "type": f"{BASE_ERROR_URI}/validation-error",
            "title": "Validation Error",
            "status": 422,
            "detail": "Request validation failed.",
            "instance": str(request.url.path),
            "errors": field_errors,
        },
        media_type="application/problem+json",
    )


# ── Registration helper (called from main.py) ──────────────────────

def register_exception_handlers(app: FastAPI) -> None:
    """Attach all custom exception handlers to the FastAPI app."""
    app.add_exception_handler(AppException, _handle_app_exception)          # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_validation_error)  # type: ignore[arg-type]
