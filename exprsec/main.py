from __future__ import annotations

from contextlib import asynccontextmanager
import logging

from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse

from exprsec.db.init_db import init_db
from exprsec.db.session import SessionLocal
from exprsec.logging_config import configure_app_logging
from exprsec.routers import admin, documents, health
from exprsec.security.config import load_security_config
from exprsec.security.dependencies import enforce_security
from exprsec.security.errors import (
    AccessDeniedError,
    ConfigurationError,
    ExpressionEvaluationError,
    PermissionEvaluatorError,
)
from exprsec.security.method import MethodSecurityInterceptor
from exprsec.services.documents import DocumentAccess, DocumentPermissionEvaluator, DocumentService
from exprsec.settings import get_settings

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    """Map method-security outcomes to HTTP; denial and failure stay distinguishable."""

    @app.exception_handler(AccessDeniedError)
    async def _access_denied(request: Request, exc: AccessDeniedError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": "Access is denied"})

    @app.exception_handler(ExpressionEvaluationError)
    async def _evaluation_failed(request: Request, exc: ExpressionEvaluationError) -> JSONResponse:
        logger.error("Authorization evaluation failed path=%s label=%s", request.url.path, exc.label)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Authorization evaluation failed"},
        )

    @app.exception_handler(PermissionEvaluatorError)
    async def _permission_store_failed(request: Request, exc: PermissionEvaluatorError) -> JSONResponse:
        logger.error("Permission evaluator failed path=%s error=%s", request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Authorization service unavailable"},
        )

    @app.exception_handler(ConfigurationError)
    async def _misconfigured(request: Request, exc: ConfigurationError) -> JSONResponse:
        logger.error("Security misconfiguration path=%s error=%s", request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Security misconfiguration"},
        )


def create_app() -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        settings = get_settings()
        configure_app_logging(settings.log_level)
        logger.info("App startup beginning")

        init_db(seed_demo_data=settings.seed_demo_data)
        logger.info("Database initialized seed_demo_data=%s", settings.seed_demo_data)

        config_path = settings.security_config_path
        config = load_security_config(
            config_path,
            permission_evaluators={"Document": DocumentPermissionEvaluator(SessionLocal)},
            beans={"documentAccess": DocumentAccess(SessionLocal)},
        )
        app.state.security_config = config
        logger.info("Loaded security config: %s", config_path)

        # Method security shares the handler (prefix, hierarchy, evaluators, beans).
        interceptor = MethodSecurityInterceptor(config.handler)
        app.state.documents = interceptor.protect(DocumentService(SessionLocal))

        yield
        # Shutdown (nothing to clean up)

    # Global dependency: every route is governed by the YAML rules.
    app = FastAPI(dependencies=[Depends(enforce_security)], lifespan=lifespan)
    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(admin.router)
    app.include_router(documents.router)

    return app


app = create_app()
