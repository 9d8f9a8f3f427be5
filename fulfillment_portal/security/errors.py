from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from fulfillment_portal.services.errors import (
    DocumentNotFound,
    IllegalTransition,
    TokenAccessDenied,
    WorkflowError,
    WorkflowErrorCode,
)

logger = logging.getLogger(__name__)


def _error_body(exc: Exception, code) -> dict:
    return {'detail': str(exc), 'code': getattr(code, 'value', code)}


def error_status(exc: Exception) -> int:
    if isinstance(exc, (DocumentNotFound, TokenAccessDenied)):
        return 404
    if isinstance(exc, IllegalTransition):
        return 409
    return 400


def install_error_handlers(app: FastAPI) -> None:
    """Map workflow errors raised by services to JSON responses.

    Every failure is per request; the session is rolled back by ``get_db``.
    """

    @app.exception_handler(TokenAccessDenied)
    async def token_denied(request: Request, exc: TokenAccessDenied):
        logger.info('token denied on %s (%s)', request.url.path.rsplit('/', 1)[0], exc.code.value)
        return JSONResponse(_error_body(exc, exc.code), status_code=404)

    @app.exception_handler(WorkflowError)
    async def workflow_error(request: Request, exc: WorkflowError):
        return JSONResponse(_error_body(exc, exc.code), status_code=error_status(exc))

    @app.exception_handler(ValueError)
    async def invalid_value(request: Request, exc: ValueError):
        return JSONResponse(_error_body(exc, WorkflowErrorCode.INVALID), status_code=400)
