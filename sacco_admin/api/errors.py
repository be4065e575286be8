"""Map domain and validation errors onto the failure envelope"""

import logging
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from sacco_admin.api.dependencies import get_request_id
from sacco_admin.domain.exceptions import DomainException

logger = logging.getLogger(__name__)


def error_response(status_code: int, message: str, errors=None) -> JSONResponse:
    body = {"success": False, "message": message}
    if errors is not None:
        body["errors"] = errors
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"Domain error: {exc.message}", extra={"request_id": get_request_id(request)})
    return error_response(exc.status_code, exc.message)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": ".".join(str(part) for part in err.get("loc", ())[1:]), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return error_response(400, "Validation failed", errors)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return error_response(exc.status_code, str(exc.detail))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unexpected error: {exc}", extra={"request_id": get_request_id(request)}, exc_info=exc)
    return error_response(500, "Internal server error")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainException, domain_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
