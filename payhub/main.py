import os

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import inspect

from .config import settings
from .db import Base, engine
from .errors import PayHubError, InvalidTransition
from .logging import setup_logging, RequestIdMiddleware
from .models import models  # noqa: F401  registers tables on Base.metadata
from .routes.payroll import router as payroll_router
from .routes.timesheets import router as timesheets_router
from .routes.leave import router as leave_router
from .routes.holidays import router as holidays_router
from .routes.workers import router as workers_router

logger = structlog.get_logger(__name__)


async def payhub_error_handler(request: Request, exc: PayHubError):
    body = {"detail": exc.message}
    if isinstance(exc, InvalidTransition):
        body["current_status"] = exc.current
        body["required_status"] = exc.required
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.message)
    else:
        logger.info("request_rejected", path=request.url.path, status=exc.status_code, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content=body)


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    app.add_exception_handler(PayHubError, payhub_error_handler)

    # Routers
    app.include_router(payroll_router)
    app.include_router(timesheets_router)
    app.include_router(leave_router)
    app.include_router(holidays_router)
    app.include_router(workers_router)

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}

    @app.on_event("startup")
    def _startup():
        # Ensure local SQLite directory exists
        if settings.database_url.startswith("sqlite:///./"):
            os.makedirs("var", exist_ok=True)
        if settings.auto_create_db:
            existing_tables = set(inspect(engine).get_table_names())
            missing = set(Base.metadata.tables.keys()) - existing_tables
            if missing:
                logger.info("creating_tables", count=len(missing))
                Base.metadata.create_all(bind=engine)
        logger.info("startup_complete", environment=settings.environment)

    return app


app = create_app()
