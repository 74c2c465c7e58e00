# app/main.py
from __future__ import annotations

from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy.exc import IntegrityError
from starlette.requests import Request

from app.api.v1.router import api_router
from app.core.config import Settings
from app.core.errors import AppError
from app.core.logging import setup_logging
from app.core.rbac import AuthorizationGate
from app.core.security_password import HashingService
from app.core.tokens import TokenConfig, TokenService
from app.db.bootstrap import run_migrations
from app.db.session import make_engine, make_session_factory
from app.services.email import MailSender, SmtpMailSender
from app.services.media import FileMediaStore, MediaStore

log = structlog.get_logger(__name__)


def _register_exception_handlers(api: FastAPI) -> None:
    @api.exception_handler(AppError)
    def handle_app_error(request: Request, exc: AppError):
        if exc.status_code >= 500:
            log.error("request_failed", path=request.url.path, code=exc.code, error=exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @api.exception_handler(RequestValidationError)
    def handle_request_validation(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"code": "VALIDATION_ERROR", "message": "Invalid request format", "details": jsonable_encoder(exc.errors())},
        )

    @api.exception_handler(IntegrityError)
    def handle_integrity_error(request: Request, exc: IntegrityError):
        return JSONResponse(
            status_code=409,
            content={"code": "UNIQUE_VIOLATION", "message": "Duplicate record.", "details": None},
        )

    @api.exception_handler(Exception)
    def handle_unexpected(request: Request, exc: Exception):
        log.exception("unhandled_exception", path=request.url.path)
        return JSONResponse(
            status_code=500,
            content={"code": "INTERNAL_ERROR", "message": "Internal error.", "details": None},
        )


def create_app(
    settings: Optional[Settings] = None,
    *,
    mailer: Optional[MailSender] = None,
    media_store: Optional[MediaStore] = None,
    engine=None,
) -> FastAPI:
    """Builds the API; run with ``uvicorn app.main:create_app --factory``."""
    settings = settings or Settings.from_env()
    setup_logging(settings)

    api = FastAPI(
        title="Accounts API",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        swagger_ui_parameters={"displayRequestDuration": True, "persistAuthorization": True},
    )

    engine = engine or make_engine(settings.DATABASE_URL)
    token_service = TokenService(TokenConfig.from_settings(settings))

    # read-only after startup
    api.state.settings = settings
    api.state.engine = engine
    api.state.session_factory = make_session_factory(engine)
    api.state.token_service = token_service
    api.state.hashing_service = HashingService()
    api.state.gate = AuthorizationGate(token_service)
    api.state.mailer = mailer or SmtpMailSender(settings)
    api.state.media_store = media_store or FileMediaStore(settings.DATA_DIR)

    api.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # narrow to known origins in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # /metrics (Prometheus)
    if settings.METRICS_ENABLED:
        Instrumentator().instrument(api).expose(api, include_in_schema=False, should_gzip=True)

    api.include_router(api_router, prefix="/api/v1")
    _register_exception_handlers(api)

    @api.get("/healthz", tags=["health"])
    def healthz():
        return {"status": "ok"}

    @api.on_event("startup")
    def startup():
        if settings.RUN_MIGRATIONS:
            run_migrations(settings.DATABASE_URL)
        log.info("startup_complete", issuer=settings.JWT_ISSUER)

    @api.on_event("shutdown")
    def shutdown():
        engine.dispose()

    return api
