"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from gitstack.blobs.store import LocalBlobStore
from gitstack.code.routes import router as code_router
from gitstack.config import Settings, get_settings
from gitstack.db.session import Database
from gitstack.errors import BlobStoreError, GitstackError, StorageTransactionError
from gitstack.limiter import limiter
from gitstack.projects.routes import router as projects_router
from gitstack.snapshots.routes import router as snapshots_router
from gitstack.users.routes import router as users_router

log = logging.getLogger(__name__)


def setup_logging(settings: Settings) -> None:
    """Configure logging from settings (stderr always; optional file)."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    fmt = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    root = logging.getLogger("gitstack")
    root.setLevel(level)
    root.handlers.clear()
    sh = logging.StreamHandler()
    sh.setLevel(level)
    sh.setFormatter(fmt)
    root.addHandler(sh)
    if settings.log_file and str(settings.log_file).strip():
        try:
            fh = logging.FileHandler(settings.log_file, encoding="utf-8")
            fh.setLevel(level)
            fh.setFormatter(fmt)
            root.addHandler(fh)
            root.info("Logging to file %s", settings.log_file)
        except OSError as e:
            root.warning("Could not open log file %s: %s", settings.log_file, e)
    else:
        root.debug("Logging to stderr only (no log_file set)")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database and blob store on startup, dispose the engine on shutdown."""
    settings: Settings = app.state.settings
    log.info("Startup: initializing database and blob store")
    database = Database(settings.database_url, echo=settings.database_echo)
    await database.init()
    app.state.database = database
    app.state.blob_store = LocalBlobStore(settings.blob_base_path, settings.blob_bucket)
    log.info("Startup complete (blobs at %s)", app.state.blob_store.root)
    yield
    log.info("Shutdown")
    await database.dispose()


async def gitstack_error_handler(request: Request, exc: GitstackError) -> JSONResponse:
    """Map domain errors to their status. Server-side failures get a generic message."""
    if exc.status_code >= 500:
        log.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
        if isinstance(exc, StorageTransactionError):
            detail = "Storage transaction failed"
        elif isinstance(exc, BlobStoreError):
            detail = "Could not store file content"
        else:
            detail = "Internal server error"
        return JSONResponse(status_code=exc.status_code, content={"detail": detail})
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Missing or malformed fields are a plain 400."""
    log.warning("Invalid request %s %s: %s", request.method, request.url.path, exc.errors())
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return generic 500 without leaking stack trace or internals."""
    log.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the API. Storage handles are created in the lifespan from settings."""
    settings = settings or get_settings()
    setup_logging(settings)

    app = FastAPI(title="Gitstack API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        """Add security headers to all responses."""
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        return response

    app.add_exception_handler(GitstackError, gitstack_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    limiter.enabled = settings.rate_limit_enabled
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.include_router(users_router)
    app.include_router(projects_router)
    app.include_router(code_router)
    app.include_router(snapshots_router)

    @app.get("/health")
    @limiter.exempt
    def health() -> JSONResponse:
        """Health check for Docker and load balancers. Exempt from rate limiting."""
        return JSONResponse(content={"status": "ok"})

    return app


app = create_app()
