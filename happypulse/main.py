# happypulse/main.py
"""
HappyPulse – FastAPI Application Entry Point
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from happypulse.core.config import settings
from happypulse.core.errors import RateLimited, WellnessError
from happypulse.db.session import AsyncSessionLocal, IndexSessionLocal, create_all

# Import all models so both metadatas know about them
from happypulse.models import user, events, surveys, word_frequency  # noqa: F401

# Registers the post-commit tasks
from happypulse.tasks import background  # noqa: F401
from happypulse.tasks import scheduler
from happypulse.tasks.queue import PostCommitQueue, TaskContext
from happypulse.services.notifications import NotificationDispatcher
from happypulse.utils.rate_limit import limiter

# Route imports
from happypulse.api.routes import (
    analytics,
    checkins,
    journals,
    leaderboard,
    quotes,
    surveys as survey_routes,
    users,
    word_analytics,
)

logging.basicConfig(
    level=logging.DEBUG if settings.APP_ENV == "development" else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("happypulse")

task_queue = PostCommitQueue(TaskContext(AsyncSessionLocal, IndexSessionLocal, NotificationDispatcher()))


# ── Lifespan: tables, post-commit workers, scheduler ─────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_all()
    queue = app.state.task_queue
    queue.start()
    if settings.SCHEDULER_ENABLED:
        scheduler.start(queue)
    logger.info(f"{settings.APP_NAME} started ({settings.APP_ENV})")
    yield
    scheduler.shutdown()
    await queue.stop()
    logger.info(f"{settings.APP_NAME} stopped")


app = FastAPI(
    title=settings.APP_NAME,
    description="Employee wellness check-ins, engagement analytics and Happy Coins",
    version="1.0.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    lifespan=lifespan,
)
app.state.task_queue = task_queue

# ── Rate limiting ─────────────────────────────────────────────────────────────
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)

# ── CORS ──────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Error envelope ────────────────────────────────────────────────────────────
@app.exception_handler(WellnessError)
async def wellness_error_handler(request: Request, exc: WellnessError):
    if exc.status_code >= 500:
        logger.error(f"[http] {request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(part) for part in err["loc"] if part not in ("body", "query", "path")),
            "message": err["msg"],
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"success": False, "message": "Validation failed", "code": "Validation", "errors": errors},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(status_code=429, content=RateLimited().to_dict())


# ── API Routes ────────────────────────────────────────────────────────────────
API_PREFIX = "/api"

app.include_router(checkins.router, prefix=API_PREFIX)
app.include_router(analytics.router, prefix=API_PREFIX)
app.include_router(leaderboard.router, prefix=API_PREFIX)
app.include_router(word_analytics.router, prefix=API_PREFIX)
app.include_router(journals.router, prefix=API_PREFIX)
app.include_router(quotes.router, prefix=API_PREFIX)
app.include_router(survey_routes.router, prefix=API_PREFIX)
app.include_router(users.router, prefix=API_PREFIX)


@app.get("/api/health", tags=["Health"])
async def health_check():
    return {"status": "ok", "app": settings.APP_NAME}


@app.get("/api/health/jobs", tags=["Health"])
async def job_status(request: Request):
    queue = request.app.state.task_queue
    return {"success": True, "data": {
        "scheduler": scheduler.status(),
        "queue": {"pending": len(queue), "completed": queue.completed, "dead_letters": len(queue.dead_letters)},
    }}
