"""
Central API router and utilities for the JLPT backend.

This module provides:
- A central router that includes all assessment module routers
- Exception handlers mapping the error hierarchy to HTTP responses
- The standard success envelope
"""

from typing import Any, Dict

from fastapi import APIRouter, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from jlpt_backend.common.error_handling import (
    DatabaseError, ErrorCode, JLPTError, error_response, log_error
)
from jlpt_backend.common.logger import app_logger
from jlpt_backend.config import settings

logger = app_logger.getChild("api")

main_router = APIRouter()

registered_modules: Dict[str, APIRouter] = {}


def register_assessment_module(name: str, router: APIRouter) -> None:
    """
    Mount an assessment module router under the versioned API prefix.

    Args:
        name: Name of the module, used as the OpenAPI tag
        router: The module's router (carrying its own path prefix)
    """
    if registered_modules.get(name) is router:
        return
    if name in registered_modules:
        logger.warning(f"Assessment module '{name}' already registered, overwriting")

    main_router.include_router(router, prefix=settings.API_V1_STR, tags=[name])
    registered_modules[name] = router
    logger.info(f"Registered assessment module: {name} with {len(router.routes)} routes")


async def jlpt_error_handler(request: Request, exc: JLPTError) -> JSONResponse:
    """Render a domain error with the status code its class declares."""
    log_error(exc, context={"path": request.url.path})
    return JSONResponse(status_code=exc.http_status, content=error_response(exc))


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    error = DatabaseError("Database operation failed", cause=exc)
    log_error(error, include_stack_trace=True, context={"path": request.url.path})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response(error, include_details=False)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle request validation errors.

    Malformed input is a client error (400) with one entry per failed field.
    """
    error_details = []
    for error in exc.errors():
        error_details.append({
            "location": list(error.get("loc", [])),
            "message": error.get("msg", "Unknown validation error"),
            "type": error.get("type", "")
        })

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "status": "error",
            "code": ErrorCode.VALIDATION_ERROR.value,
            "message": "Validation error",
            "details": error_details
        }
    )


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(JLPTError, jlpt_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)


class APIResponse:
    """Standard API response structure"""

    @staticmethod
    def success(data: Any = None, message: str = "Success") -> Dict[str, Any]:
        return {
            "status": "success",
            "message": message,
            "data": data
        }
