"""
ProExchange Workflow API - Main Application Entry Point

This module initializes the FastAPI application with:
- Database schema initialization
- Optional reminder scheduler
- CORS and Prometheus middleware
- Translation of workflow errors into structured responses
- API router registration

Architecture:
    FastAPI App
    ├── Lifespan Management (startup/shutdown)
    ├── CORS Middleware
    ├── Prometheus Middleware (/metrics)
    └── API Router
        ├── /connections - Connection requests
        ├── /jobs/{id}/applications, /applications - Job applications
        ├── /firm-bench - Firm bench invites and ordering
        └── /stats - Dashboard counts
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from proexchange.api import api_router
from proexchange.config import get_settings
from proexchange.database import init_db
from proexchange.middleware import setup_metrics
from proexchange.scheduler import start_scheduler, stop_scheduler
from proexchange.services.errors import DuplicateExists, WorkflowError

settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle events.

    Startup:
        1. Initialize database tables
        2. Start the reminder scheduler when enabled

    Shutdown:
        1. Stop the scheduler
    """
    await init_db()
    if settings.reminders_enabled:
        start_scheduler()
    yield
    stop_scheduler()


app = FastAPI(
    title=settings.app_name,
    description="Connection, job application and firm bench workflows",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_metrics(app)


@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    content = {"detail": exc.message, "code": exc.code}
    if isinstance(exc, DuplicateExists) and exc.existing_id:
        content["existingId"] = exc.existing_id
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies and query strings share the 400 validation_error shape."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query"))
    message = first.get("msg", "Invalid request")
    detail = f"{location}: {message}" if location else message
    return JSONResponse(status_code=400, content={"detail": detail, "code": "validation_error"})


app.include_router(api_router)


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
