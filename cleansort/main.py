from contextlib import asynccontextmanager
from datetime import datetime, timezone as dt_timezone
from typing import Optional
import logging
import sys

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from cleansort.core.config import settings
from cleansort.reminders.config import settings as reminder_settings
from cleansort.reminders.dispatcher import ReminderDispatcher
from cleansort.reminders.gateway import FcmPushGateway, PushGateway
from cleansort.reminders.scheduler import ReminderScheduler
from cleansort.reminders.store import ReminderStore

# Configure logging
_handlers = [logging.StreamHandler(sys.stdout)]
if settings.LOG_FILE:
    _handlers.append(logging.FileHandler(settings.LOG_FILE))
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=_handlers,
)

logger = logging.getLogger(__name__)


def _default_store() -> Optional[ReminderStore]:
    from cleansort.db.init_db import init_db
    from cleansort.db.session import SessionLocal
    from cleansort.reminders.repository import SqlAlchemyReminderStore

    try:
        init_db()
    except Exception as e:
        logger.error(f"[Startup] Database initialization failed: {e!r}")
        return None
    return SqlAlchemyReminderStore(SessionLocal)


async def start_reminder_notifications(app: FastAPI) -> None:
    app.state.reminder_dispatcher = None
    app.state.reminder_scheduler = None
    if not reminder_settings.ENABLED:
        logger.info("[Startup] Reminder notifications disabled by REMINDER_ENABLED")
        return

    store = app.state.reminder_store or _default_store()
    if store is None:
        logger.warning("[Startup] No reminder store available - reminder notifications disabled")
        return
    gateway = app.state.push_gateway or FcmPushGateway()

    dispatcher = ReminderDispatcher.from_settings(store, gateway, reminder_settings)
    scheduler = ReminderScheduler(
        dispatcher,
        interval_seconds=reminder_settings.SCAN_INTERVAL_SECONDS,
        startup_delay=reminder_settings.STARTUP_DELAY_SECONDS,
    )
    if await scheduler.start():
        app.state.reminder_dispatcher = dispatcher
        app.state.reminder_scheduler = scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info(f"Starting up {settings.PROJECT_NAME} ({settings.ENVIRONMENT.value})...")
    await start_reminder_notifications(app)

    yield

    logger.info(f"Shutting down {settings.PROJECT_NAME}...")
    scheduler = getattr(app.state, "reminder_scheduler", None)
    if scheduler is not None:
        await scheduler.stop()
    logger.info("Shutdown complete")


def create_application(
    store: Optional[ReminderStore] = None,
    gateway: Optional[PushGateway] = None,
) -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        description="CleanSort - receipt OCR and disposal reminder notifications",
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        docs_url=f"{settings.API_V1_STR}/docs",
        lifespan=lifespan,
    )
    app.state.reminder_store = store
    app.state.push_gateway = gateway
    app.state.reminder_dispatcher = None
    app.state.reminder_scheduler = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )
    logger.info(f"CORS configured with origins: {settings.ALLOWED_ORIGINS}")

    from cleansort.ocr.api import router as ocr_router
    from cleansort.reminders.api import router as reminders_router

    app.include_router(ocr_router, prefix="/api", tags=["ocr"])
    app.include_router(reminders_router, prefix=f"{settings.API_V1_STR}/reminders", tags=["reminders"])

    @app.get("/health")
    def health():
        return {
            "status": "OK",
            "message": f"{settings.PROJECT_NAME} is running",
            "timestamp": datetime.now(dt_timezone.utc).isoformat(),
        }

    if reminder_settings.METRICS_ENABLED:
        from prometheus_fastapi_instrumentator import Instrumentator
        Instrumentator().instrument(app).expose(app, endpoint="/metrics")

    return app


app = create_application()


if __name__ == "__main__":
    uvicorn.run(
        "cleansort.main:app",
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        reload=settings.is_development,
    )
