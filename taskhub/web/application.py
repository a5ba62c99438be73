from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from taskhub.log import configure_logging
from taskhub.web.api.router import api_router
from taskhub.web.lifespan import lifespan_setup


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Every error the API reports has the ``{"msg": ...}`` shape."""
    return JSONResponse(
        {"msg": exc.detail},
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(
    request: Request, exc: RequestValidationError,
) -> JSONResponse:
    """All violations are reported together."""
    return JSONResponse(
        {"errors": jsonable_encoder(exc.errors())},
        status_code=status.HTTP_400_BAD_REQUEST,
    )


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log the failure, keep its detail away from the caller."""
    logger.opt(exception=exc).error(
        "Unhandled error on {} {}", request.method, request.url.path,
    )
    return JSONResponse(
        {"msg": "Server error"},
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def get_app() -> FastAPI:
    """
    Get FastAPI application.

    This is the main constructor of an application.

    :return: application.
    """
    configure_logging()
    app = FastAPI(
        title="taskhub",
        lifespan=lifespan_setup,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)

    # Main router for the API.
    app.include_router(router=api_router, prefix="/api")

    return app
