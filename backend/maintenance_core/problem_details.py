"""RFC 7807 Problem Details helpers."""
from __future__ import annotations

import logging
from http import HTTPStatus

from fastapi import Request
from fastapi.responses import JSONResponse

from .domain_errors import DataIntegrityError, DomainError

logger = logging.getLogger(__name__)


def build_problem_details_response(exc: DomainError) -> JSONResponse:
    """Render DomainError as RFC 7807 payload with stable domain code."""
    try:
        title = HTTPStatus(exc.http_status).phrase
    except ValueError:
        title = "Domain Error"

    payload: dict[str, object] = {
        "type": f"https://api.maintenance.local/problems/{exc.code.lower()}",
        "title": title,
        "status": exc.http_status,
        "detail": exc.message,
        "code": exc.code,
    }
    if exc.details is not None:
        payload["details"] = exc.details

    return JSONResponse(
        status_code=exc.http_status,
        content=payload,
        media_type="application/problem+json",
    )


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if isinstance(exc, DataIntegrityError):
        logger.error(
            "data_integrity_violation path=%s detail=%s details=%s",
            request.url.path,
            exc.message,
            exc.details,
        )
    else:
        logger.info("domain_error path=%s code=%s status=%s", request.url.path, exc.code, exc.http_status)
    return build_problem_details_response(exc)
