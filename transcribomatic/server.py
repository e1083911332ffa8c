import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from transcribomatic.config.loader import AppConfig, load_app_config
from transcribomatic.core.errors import ProxyError
from transcribomatic.logger import get_logger, setup_logging
from transcribomatic.routes.images import router as images_router
from transcribomatic.routes.manage import router as manage_router
from transcribomatic.routes.misc import router as misc_router
from transcribomatic.routes.session import router as session_router
from transcribomatic.services import ProxyServices, build_services

log = get_logger("server")


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message, "timestamp": int(time.time())},
    )


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "invalid value")
    return f"Invalid request: {field}: {message}" if field else f"Invalid request: {message}"


def create_app(
    config: Optional[AppConfig] = None,
    services: Optional[ProxyServices] = None,
) -> FastAPI:
    """Build the FastAPI app.

    With no arguments the configuration is loaded from
    $TRANSCRIBOMATIC_CONFIG (or ./config.yaml), which makes this usable as
    ``uvicorn transcribomatic.server:create_app --factory``.
    """
    if services is None:
        config = config or load_app_config()
        setup_logging(config.logging.level, config.logging.json)
        services = build_services(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info("initializing_schema")
        services.repository.initialize_schema()
        yield

    app = FastAPI(lifespan=lifespan)
    app.state.services = services

    init_app(app)
    return app


def init_app(app: FastAPI):
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    app.include_router(misc_router)
    app.include_router(session_router)
    app.include_router(images_router)
    app.include_router(manage_router)

    @app.exception_handler(ProxyError)
    async def proxy_error_handler(request: Request, exc: ProxyError):
        if exc.status_code >= 500:
            log.error("request_failed", path=request.url.path, status=exc.status_code,
                      error=exc.message, upstream_status=getattr(exc, "upstream_status", None))
        else:
            log.info("request_rejected", path=request.url.path, status=exc.status_code,
                     error=exc.message)
        return _error_response(exc.status_code, exc.message)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return _error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        log.info("request_rejected", path=request.url.path, status=400, errors=len(exc.errors()))
        return _error_response(400, _validation_message(exc))

    @app.exception_handler(Exception)
    async def exception_handler(request: Request, exc: Exception):
        log.exception("unhandled_exception", path=request.url.path, exc_info=exc)
        return _error_response(500, "Internal Server Error")
