import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from app.config import get_settings
from app.database import init_db
from app.exceptions import GraphError
from app.rate_limit import limiter
from app.redis_client import close_redis_client
from app.accounts.router import router as accounts_router
from app.permissions.router import router as permissions_router
from app.social_graph.router import router as social_router
from shared.middleware.error_handler import error_envelope, error_envelope_middleware
from shared.middleware.request_id import RequestIdLogFilter, request_id_middleware


# ── OpenAPI metadata ──────────────────────────────────────────────────────────

_DESCRIPTION = """
## Linkgraph Graph Service

Multi-account relationship and authorization engine:

* **Accounts** — one login (principal) acting as itself or as any business it
  owns (personas). The active persona travels in request headers and is
  re-validated against business ownership on every call.
* **Connections** — mutual, approval-gated links between any two accounts
  (personal or business). At most one live connection per pair.
* **Follows** — directed edges to personal accounts; auto-accepted or pending
  depending on the followee's follow policy.
* **Blocks** — principal-to-principal; blocking severs every connection and
  follow between the two people, whichever persona they were made from.
* **Relationship status** — connection / follow / block state of any target as
  seen from the active persona.
* **Permissions** — edit/delete decisions for posts, comments, profiles and
  businesses, evaluated against the active persona.

### Authentication
```
Authorization: Bearer <access_token>
X-Active-Account-Type: user | business     (optional, default user)
X-Active-Account-Id: <uuid>                (required for business)
```

### Error shape
Domain errors return:
```json
{ "error": { "code": "already_pending", "message": "..." }, "request_id": "..." }
```
`code` is one of `not_authenticated`, `not_authorized`, `already_exists`,
`already_pending`, `already_connected`, `invalid_state`, `blocked`,
`not_found`, `limit_exceeded`.
"""

_TAGS_METADATA = [
    {
        "name": "accounts",
        "description": "The caller, their businesses, and the active persona.",
    },
    {
        "name": "social-graph",
        "description": (
            "Connections, follows and blocks, acting as the active persona. "
            "Every mutation returns the resolved relationship status."
        ),
    },
    {
        "name": "permissions",
        "description": "Authorization decisions for content and account management.",
    },
]


# ── Health schema ─────────────────────────────────────────────────────────────

class HealthResponse(BaseModel):
    status: str
    service: str


# ── App factory ───────────────────────────────────────────────────────────────

def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s",
    )
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, RequestIdLogFilter) for f in handler.filters):
            handler.addFilter(RequestIdLogFilter())


async def _graph_error_handler(request: Request, exc: GraphError):
    return error_envelope(request, exc.status_code, exc.kind.value, exc.message)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    init_db(settings.graph_database_url)
    yield
    await close_redis_client()


def create_app() -> FastAPI:
    settings = get_settings()
    _configure_logging(settings.log_level)
    app = FastAPI(
        title="Linkgraph Graph Service",
        version="1.0.0",
        description=_DESCRIPTION,
        openapi_tags=_TAGS_METADATA,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Attach rate limiter state before middleware
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(GraphError, _graph_error_handler)

    # Middleware is applied in reverse-registration order (last added = outermost).
    # CORS must be outermost so ALL responses (including 429s) carry CORS headers.
    app.add_middleware(SlowAPIMiddleware)
    app.middleware("http")(request_id_middleware)
    app.middleware("http")(error_envelope_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=600,
    )

    app.include_router(accounts_router, prefix="/api/v1")
    app.include_router(social_router, prefix="/api/v1")
    app.include_router(permissions_router, prefix="/api/v1")

    @app.get("/health", response_model=HealthResponse, tags=["health"], include_in_schema=True)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", service="graph")

    return app


app = create_app()
