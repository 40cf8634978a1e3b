# =========================
# kozi_agent/main.py
# =========================
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from kozi_agent.core.errors import AssistantError, UnsafeStatement
from kozi_agent.deps import settings
from kozi_agent.docs import create_app
from kozi_agent.jobs.payment_reminders import PaymentReminderScheduler
from kozi_agent.routers import assistant, classifier, gmail, health, sql_agent
from kozi_agent.settings import Settings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

# Quiet noisy third-party loggers
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("urllib3").setLevel(logging.WARNING)
logging.getLogger("googleapiclient").setLevel(logging.WARNING)
logging.getLogger("apscheduler").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


async def assistant_error_handler(request: Request, exc: AssistantError) -> JSONResponse:
    logger.info("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    body = {"success": False, "error": exc.public_message}
    if isinstance(exc, UnsafeStatement) and exc.proposal:
        body["proposal"] = exc.proposal
    return JSONResponse(status_code=exc.status_code, content=body)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # auth, role and envelope checks raise HTTPException; keep the {success, error} shape
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"field": ".".join(str(loc) for loc in e.get("loc", ())), "message": e.get("msg", "")}
        for e in exc.errors()
    ]
    logger.info("Invalid request on %s: %s", request.url.path, details)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"success": False, "error": "Invalid request.", "details": details},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled exception on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": AssistantError.public_message},
    )


def build_app(s: Settings) -> FastAPI:
    reminders = PaymentReminderScheduler(s)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await reminders.start()
        try:
            yield
        finally:
            await reminders.stop()

    app = create_app(s, lifespan=lifespan)

    # CORS (dev-open; tighten for prod)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(AssistantError, assistant_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # health stays at the root; assistant surfaces live under /api like the rest of the platform
    app.include_router(health.router)
    for r in (sql_agent.router, gmail.router, classifier.router, assistant.router):
        app.include_router(r, prefix="/api")
    return app


app = build_app(settings())
