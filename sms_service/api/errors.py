from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from sms_service.api.schemas import ErrorResponse
from sms_service.domain.errors import (
    DispatchEnqueueFailedError,
    DomainDependencyError,
    DomainValidationError,
    MessageNotFoundError,
)

logger = logging.getLogger("runtime")


def _error_response(status: int, message: str, errors: list[str] | None = None) -> JSONResponse:
    body = ErrorResponse(status=status, message=message, errors=errors)
    return JSONResponse(status_code=status, content=body.model_dump(mode="json"))


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainValidationError)
    async def _validation(request: Request, exc: DomainValidationError) -> JSONResponse:
        del request
        return _error_response(400, "Validation failed", [error.message for error in exc.errors])

    @app.exception_handler(RequestValidationError)
    async def _request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        del request
        return _error_response(400, "Validation failed", [str(error.get("msg", "")) for error in exc.errors()])

    @app.exception_handler(MessageNotFoundError)
    async def _not_found(request: Request, exc: MessageNotFoundError) -> JSONResponse:
        del request
        return _error_response(404, str(exc))

    @app.exception_handler(DispatchEnqueueFailedError)
    async def _enqueue_failed(request: Request, exc: DispatchEnqueueFailedError) -> JSONResponse:
        del request
        return _error_response(
            503,
            "Message was stored but could not be queued for delivery",
            [f"message_id={exc.message.id}"],
        )

    @app.exception_handler(DomainDependencyError)
    async def _dependency(request: Request, exc: DomainDependencyError) -> JSONResponse:
        logger.error("dependency unavailable", extra={"detail": str(exc)})
        del request
        return _error_response(503, "Service temporarily unavailable. Please try again later.")
