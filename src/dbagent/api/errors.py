"""
Exception handlers: map dbagent errors to RFC 7807 responses.
"""

from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from dbagent.api.schemas import ProblemDetail
from dbagent.core.errors import DbAgentError, ErrorCategory
from dbagent.core.logging import get_logger

logger = get_logger(__name__)

# ── Error category → HTTP status mapping ─────────────────────────────────

CATEGORY_TO_STATUS: dict[ErrorCategory, int] = {
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.CONFIG: 400,
    ErrorCategory.VALIDATION: 400,
    ErrorCategory.DATABASE: 503,
    ErrorCategory.EXECUTION: 500,
    ErrorCategory.INTERNAL: 500,
}


def status_for_category(category: ErrorCategory) -> int:
    """Resolve an error category to HTTP status, defaulting to 500."""
    return CATEGORY_TO_STATUS.get(category, 500)


def problem_response(
    *,
    status: int,
    title: str,
    detail: str = "",
    instance: str = "",
    context: dict[str, Any] | None = None,
) -> JSONResponse:
    """Build a RFC 7807 JSON error response."""
    body = ProblemDetail(
        title=title,
        status=status,
        detail=detail,
        instance=instance,
        context=context or {},
    )
    return JSONResponse(
        status_code=status,
        content=body.model_dump(),
        media_type="application/problem+json",
    )


async def dbagent_error_handler(request: Request, exc: DbAgentError) -> JSONResponse:
    """Render a :class:`DbAgentError` with the status of its category."""
    status = status_for_category(exc.category)
    if status >= 500:
        logger.error("api.request_failed", path=request.url.path, **exc.to_dict())
    return problem_response(
        status=status,
        title=exc.message,
        detail=exc.category.value,
        instance=str(request.url),
        context={k: str(v) for k, v in exc.context.items()},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions; returns 500 with ProblemDetail."""
    logger.exception("api.unhandled_exception", path=request.url.path)
    return problem_response(
        status=500,
        title="Internal Server Error",
        detail=str(exc) if request.app.state.settings.api_debug else "An unexpected error occurred.",
        instance=str(request.url),
    )
