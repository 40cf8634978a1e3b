# kozi_agent/docs.py
from typing import Any, Callable, Dict, List, Optional

from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi

from kozi_agent.settings import Settings

DESCRIPTION = (
    "Kozi recruitment assistant: routes each message to platform help, a **read-only** "
    "SQL answer over the Kozi database, or an admin **Gmail** action. Completions by **Gemini**.\n\n"
    "Authenticate with the platform JWT (`Authorization: Bearer ...`, or `?token=` for SSE)."
)

TAGS_METADATA: List[Dict[str, Any]] = [
    {"name": "health", "description": "Liveness & database readiness checks."},
    {
        "name": "sql-agent",
        "description": (
            "Natural-language questions over the Kozi database. Statements are read-only and capped; "
            "`/api/sql-agent/stream` streams progress and the answer using **Server-Sent Events (SSE)**."
        ),
    },
    {"name": "gmail", "description": "Mailbox actions (search, read, send, bulk send). Admin only."},
    {"name": "classifier", "description": "Intent classification: chat, sql or gmail."},
    {
        "name": "assistant",
        "description": "Full routed assistant (classify, then chat, data or mailbox) streamed over SSE.",
    },
]

BEARER_SCHEME = {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"}


def _openapi_builder(app: FastAPI) -> Callable[[], Dict[str, Any]]:
    def build() -> Dict[str, Any]:
        if app.openapi_schema is None:
            schema = get_openapi(
                title=app.title,
                version=app.version,
                description=app.description,
                routes=app.routes,
                tags=TAGS_METADATA,
            )
            schema["servers"] = [{"url": "http://127.0.0.1:8001", "description": "Local dev"}]
            schema.setdefault("components", {}).setdefault("securitySchemes", {})["BearerAuth"] = BEARER_SCHEME
            schema["security"] = [{"BearerAuth": []}]
            app.openapi_schema = schema
        return app.openapi_schema
    return build


def create_app(settings: Settings, lifespan: Optional[Any] = None) -> FastAPI:
    """Swagger/OpenAPI metadata and docs URLs live here; routers are added by main.build_app."""
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description=DESCRIPTION,
        openapi_url="/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        contact={"name": "Kozi Team"},
        openapi_tags=TAGS_METADATA,
        lifespan=lifespan,
    )
    app.openapi = _openapi_builder(app)
    return app
