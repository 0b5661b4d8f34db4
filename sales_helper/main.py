"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from sales_helper.api.v1.catalog import router as catalog_router
from sales_helper.api.v1.health import router as health_router
from sales_helper.api.v1.requests import router as requests_router
from sales_helper.api.v1.submit import router as submit_router
from sales_helper.config import settings
from sales_helper.database import engine
from sales_helper.errors import AppError
from sales_helper.middleware import CorrelationIdMiddleware
from sales_helper.pipedrive.client import close_pipedrive_client
from sales_helper.redis_client import close_redis

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.dev.ConsoleRenderer() if settings.environment == "development"
        else structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        getattr(logging, settings.log_level.upper(), logging.INFO)
    ),
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    logger.info(
        "app_starting",
        environment=settings.environment,
        submit_mode=settings.external_submit_mode,
    )
    yield
    await close_pipedrive_client()
    await close_redis()
    await engine.dispose()
    logger.info("app_shutting_down")


app = FastAPI(
    title="Sales Helper API",
    description="Sales request tracking with Pipedrive deal submission",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(CorrelationIdMiddleware)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "request_error",
        code=exc.code,
        error=exc.message,
        status=exc.status_code,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    message = errors[0]["msg"] if errors else "Invalid request data"
    logger.warning("request_invalid", errors=len(errors), message=message)
    return JSONResponse(
        status_code=422,
        content={
            "ok": False,
            "code": "ERR_VALIDATION",
            "message": message,
            "data": {"errors": jsonable_errors(errors)},
        },
    )


def jsonable_errors(errors) -> list[dict]:
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in errors
    ]


# Include routers
app.include_router(requests_router)
app.include_router(submit_router)
app.include_router(catalog_router)
app.include_router(health_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Sales Helper API",
        "version": "0.1.0",
        "status": "running",
    }
