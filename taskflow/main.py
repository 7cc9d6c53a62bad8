"""TaskFlow FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from taskflow.config import get_settings
from taskflow.database import close_db, get_db_session, init_db
from taskflow.logging_config import configure_logging, get_logger
from taskflow.middleware.request_context import RequestContextMiddleware
from taskflow.routes.activity import router as activity_router
from taskflow.routes.dashboard import router as dashboard_router
from taskflow.routes.gamification import router as gamification_router
from taskflow.routes.tasks import router as tasks_router
from taskflow.routes.users import router as users_router
from taskflow.services.badge_service import ensure_badge_catalog

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: init DB and seed badges on startup, cleanup on shutdown."""
    settings = get_settings()
    configure_logging(settings)

    logger.info("starting_database_init")
    await init_db()

    async with get_db_session() as db:
        await ensure_badge_catalog(db)

    logger.info("application_started")
    yield

    logger.info("shutting_down")
    await close_db()
    logger.info("shutdown_complete")


app = FastAPI(
    title="TaskFlow",
    description="Task board with points, badges and a team ranking",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestContextMiddleware)

app.include_router(tasks_router)
app.include_router(gamification_router)
app.include_router(dashboard_router)
app.include_router(activity_router)
app.include_router(users_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "service": "taskflow"}
