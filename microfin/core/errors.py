from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from microfin.services.errors import LendingError, ScheduleInvariantError

logger = logging.getLogger(__name__)


def _default_code(status_code: int) -> str:
    mapping = {
        400: "bad_request",
        401: "unauthorized",
        403: "forbidden",
        404: "not_found",
        409: "conflict",
        405: "method_not_allowed",
        422: "unprocessable_entity",
        429: "rate_limited",
        503: "service_unavailable",
    }
    return mapping.get(status_code, "http_error")


def _default_message(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Request failed"


def _normalize_details(details: Any) -> dict:
    if details is None:
        return {}
    if isinstance(details, dict):
        return details
    if isinstance(details, list):
        return {"errors": details}
    if isinstance(details, str):
        return {"detail": details}
    return {"detail": str(details)}


def _build_response(
    status_code: int,
    code: str,
    message: str,
    details: Any | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    payload = {
        "code": code,
        "message": message,
        "data": None,
        "details": _normalize_details(details),
    }
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload), headers=headers)


def _parse_http_exception_detail(detail: Any, status_code: int) -> tuple[str, str, dict]:
    code = _default_code(status_code)
    message = _default_message(status_code)

    if isinstance(detail, dict):
        code = detail.get("code") or code
        message = detail.get("message") or detail.get("detail") or message
        if "details" in detail:
            return code, message, _normalize_details(detail.get("details"))
        remainder = {k: v for k, v in detail.items() if k not in {"code", "message", "detail"}}
        return code, message, remainder or {"detail": message}

    if isinstance(detail, list):
        return code, message, {"errors": detail}

    if isinstance(detail, str):
        return code, detail, {"detail": detail}

    return code, message, {"detail": str(detail)}


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code, message, details = _parse_http_exception_detail(exc.detail, exc.status_code)
    return _build_response(exc.status_code, code, message, details, headers=getattr(exc, "headers", None))


async def lending_error_handler(request: Request, exc: LendingError) -> JSONResponse:
    logger.info(
        "Lending operation refused: code=%s status=%s path=%s",
        exc.code,
        exc.status_code,
        request.url.path,
    )
    return _build_response(exc.status_code, exc.code, exc.message, exc.details)


def _field_errors(errors: list[dict]) -> list[dict[str, str]]:
    # submitted values are not echoed back
    fields = []
    for error in errors:
        loc = [str(part) for part in error.get("loc") or () if part not in {"body", "query", "path"}]
        fields.append(
            {
                "field": ".".join(loc),
                "type": str(error.get("type") or "value_error"),
                "message": str(error.get("msg") or "Invalid value"),
            }
        )
    return fields


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    fields = _field_errors(exc.errors())
    message = "Validation failed"
    if fields:
        first = fields[0]
        message = f"{first['field']}: {first['message']}" if first["field"] else first["message"]
    return _build_response(
        status_code=422,
        code="validation_error",
        message=message,
        details={"errors": fields},
    )



async def rate_limit_exception_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    response = _build_response(
        status_code=429,
        code="rate_limited",
        message=_default_message(429),
        details=getattr(exc, "detail", None),
    )
    headers = getattr(exc, "headers", None)
    if isinstance(headers, dict):
        response.headers.update(headers)
    return response


async def invariant_exception_handler(request: Request, exc: ScheduleInvariantError) -> JSONResponse:
    logger.error("Loan invariant violated: %s", exc, exc_info=exc)
    return _build_response(
        status_code=500,
        code="invariant_violation",
        message="Internal server error",
        details={},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return _build_response(
        status_code=500,
        code="internal_server_error",
        message="Internal server error",
        details={},
    )


def register_exception_handlers(app) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exception_handler)
    app.add_exception_handler(LendingError, lending_error_handler)
    app.add_exception_handler(ScheduleInvariantError, invariant_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
