"""
FastAPI Portal Server
Customer and staff API for the bank payments portal: session and CSRF
transport, registration, payment creation and the staff verify/submit flow.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import sessionmaker

from config import Config
from database import SessionLocal, create_tables, test_connection
from middleware.rate_limiter import check_request
from routes import account_routes, payment_routes, session_routes
from services.service_container import PortalServices, build_services
from utils.error_handler import PortalError, RateLimited, ValidationError, internal_error_for

logger = logging.getLogger(__name__)


def portal_error_response(error: PortalError) -> JSONResponse:
    response = JSONResponse(content=error.to_dict(), status_code=error.http_status)
    if isinstance(error, RateLimited):
        response.headers["Retry-After"] = str(error.retry_after)
    return response


def _field_errors_from(exc: RequestValidationError) -> dict:
    fields = {}
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        fields.setdefault(".".join(location) or "body", []).append(error.get("msg", "Invalid value"))
    return fields


def create_app(session_factory: Optional[sessionmaker] = None,
               services: Optional[PortalServices] = None) -> FastAPI:
    """Build the portal application around an explicit store handle"""
    session_factory = session_factory or SessionLocal
    services = services or build_services(session_factory)
    bind = session_factory.kw.get("bind")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup: schema, bootstrap staff, configuration checks
        logger.info(f"🔧 Portal worker {os.getpid()} starting...")
        Config.log_environment_config()
        Config.validate()
        if not create_tables(bind):
            raise RuntimeError("Database schema could not be created")
        if Config.SEED_STAFF_ACCOUNTS:
            services.accounts.seed_staff_accounts()
        services.authenticator.purge_expired()
        logger.info(f"✅ Portal worker {os.getpid()} initialized successfully")

        yield  # App is now running and handling requests

        logger.info(f"🔄 Portal worker {os.getpid()} shutting down...")

    app = FastAPI(
        title="Bank Payments Portal",
        description="Customer payments with staff verification and SWIFT release",
        lifespan=lifespan,
    )
    app.state.services = services
    app.state.db_bind = bind

    @app.middleware("http")
    async def harden_response(request: Request, call_next):
        """Rate limit, translate unexpected faults and attach security headers"""
        try:
            check_request(services.rate_limiter, request)
            response = await call_next(request)
        except PortalError as e:
            response = portal_error_response(e)
        except Exception as e:
            response = portal_error_response(internal_error_for(e, expose_detail=not Config.IS_PRODUCTION))
        services.security.apply(response)
        return response

    @app.exception_handler(PortalError)
    async def handle_portal_error(request: Request, exc: PortalError):
        if exc.http_status >= 500:
            logger.error(f"❌ {exc.category.value} {exc.code} on {request.method} {request.url.path}: {exc.message}")
        else:
            logger.info(f"{exc.category.value} {exc.code} on {request.method} {request.url.path}")
        return portal_error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        return portal_error_response(ValidationError("Invalid input", field_errors=_field_errors_from(exc)))

    app.include_router(session_routes.router)
    app.include_router(account_routes.router)
    app.include_router(payment_routes.router)

    @app.get("/health")
    def health_check():
        """Liveness plus store connectivity"""
        database_ok = test_connection(bind)
        return JSONResponse(
            content={
                "status": "healthy" if database_ok else "degraded",
                "service": "bank-payments-portal",
                "database": "ok" if database_ok else "unavailable",
            },
            status_code=200 if database_ok else 503,
        )

    return app
