from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from .error import ClientError, ServerError
import logging

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _error_body(exc) -> dict:
    error_dict = {"code": exc.base_error.code, "message": exc.base_error.message}
    error_dict.update(exc.base_error.details)
    return error_dict


async def handle_client_error(request: Request, exc: ClientError):
    error_dict = _error_body(exc)
    logger.warning(f"Client error: {exc.base_error.code} on {request.url.path}")
    headers = None
    if "retry_after" in error_dict:
        headers = {"Retry-After": str(error_dict["retry_after"])}
    return JSONResponse(
        status_code=exc.status_code, content={"error": error_dict}, headers=headers
    )


async def handle_server_error(request: Request, exc: ServerError):
    if exc.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR:
        error_dict = {"code": exc.base_error.code, "message": "Internal server error"}
    else:
        error_dict = _error_body(exc)
    logger.error(f"Server error: {exc.base_error.code} on {request.url.path}")
    return JSONResponse(status_code=exc.status_code, content={"error": error_dict})


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def create_app(ApplicationConfig, auth_context=None) -> FastAPI:
    from src.depends import build_auth_context, close_auth_context, create_tables

    configure_logging(ApplicationConfig.LOG_LEVEL)

    # Fails fast on a missing or weak signing key
    context = auth_context or build_auth_context(ApplicationConfig)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if ApplicationConfig.DB_CREATE_TABLES:
            await create_tables()
        yield
        await close_auth_context(context)

    app = FastAPI(title="Auth Core API", version="0.1.0", lifespan=lifespan)
    app.state.auth_context = context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ApplicationConfig.CORS_ORIGINS,
        allow_credentials=ApplicationConfig.CORS_ALLOW_CREDENTIALS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from src.api.routes import (
        admin,
        audit,
        auth,
        health_check,
        oauth,
        password,
        sessions,
        two_factor,
    )

    app.include_router(health_check.router, tags=["Health"])
    app.include_router(auth.router, tags=["Authentication"])
    app.include_router(two_factor.router, tags=["Two-Factor"])
    app.include_router(password.router, tags=["Password"])
    app.include_router(oauth.router, tags=["OAuth"])
    app.include_router(sessions.router, tags=["Sessions"])
    app.include_router(audit.router, tags=["Audit"])
    app.include_router(admin.router, tags=["Admin"])

    app.add_exception_handler(ClientError, handle_client_error)
    app.add_exception_handler(ServerError, handle_server_error)

    return app
