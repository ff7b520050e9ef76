"""PolicyLens: plain-language explanations of insurance policies.

Application setup:
  - Signed cookie sessions (Google sign-in)
  - CORS middleware (configurable origins)
  - Request logging middleware
  - Uniform JSON error payloads: ``{"error": "<message>"}``
  - Periodic sweep of expired usage sessions
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from app.config import settings
from app.routers import ai, analyses, auth, clauses, insights, sessions, uploads
from app.services.scheduler import start_scheduler, stop_scheduler
from app.middleware.request_logging import RequestLoggingMiddleware

VERSION = "1.0.0"

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info(f"PolicyLens starting up (storage={settings.storage_backend})")
    if settings.storage_backend == "database":
        from app.database import init_db
        init_db()

    if settings.ai_enabled:
        logger.info(f"AI provider: {settings.ai_provider} ({settings.resolved_ai_model})")
    else:
        logger.warning("No AI provider configured, analysis will return canned results")

    if not settings.google_oauth_enabled:
        logger.warning("Google OAuth not configured, sign-in disabled")

    start_scheduler(settings.session_cleanup_interval_minutes)

    yield

    stop_scheduler()
    logger.info("PolicyLens shut down")


app = FastAPI(
    title="PolicyLens",
    description="AI-powered insurance policy explainer",
    version=VERSION,
    lifespan=lifespan,
)


# ---- Error payloads ----

def _validation_message(exc: RequestValidationError) -> str:
    """Reduce pydantic's error list to one readable sentence."""
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    err = errors[0]
    msg = err.get("msg", "Invalid request")
    if err.get("type") == "value_error":
        return msg.removeprefix("Value error, ")
    field = ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path"))
    return f"{field}: {msg}" if field else msg


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": _validation_message(exc)})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# ---- Middleware (order matters: last added = first executed) ----

app.add_middleware(
    SessionMiddleware,
    secret_key=settings.session_secret,
    session_cookie="policylens_session",
    max_age=settings.session_max_age_hours * 3600,
    same_site="lax",
    https_only=settings.https_only_cookies,
)

app.add_middleware(RequestLoggingMiddleware)

_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
if _origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

# ---- API Routers ----
app.include_router(auth.router)
app.include_router(analyses.router)
app.include_router(clauses.router)
app.include_router(insights.router)
app.include_router(sessions.router)
app.include_router(ai.router)
app.include_router(uploads.router)


@app.get("/health")
async def health_check():
    """Health check endpoint (always public)."""
    return {
        "status": "healthy",
        "version": VERSION,
        "storage_backend": settings.storage_backend,
        "ai_mode": settings.ai_provider if settings.ai_enabled else "mock",
        "google_oauth_enabled": settings.google_oauth_enabled,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host=settings.app_host, port=settings.app_port)
