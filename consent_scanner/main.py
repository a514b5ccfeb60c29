import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from consent_scanner.api_routers.v1 import api_router
from consent_scanner.features.health.routes.health import router as health_router
from consent_scanner.features.scanner.services.browser.browser_session import BrowserSession
from consent_scanner.features.scanner.services.queue.factory import create_queue_service
from consent_scanner.platform.config import settings
from consent_scanner.platform.db.session import SessionLocal, create_tables, engine
from consent_scanner.platform.exceptions import add_exception_handlers
from consent_scanner.platform.logger import get_logger

# Configure logging to show INFO level messages
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.DATABASE_URL.startswith("sqlite"):
        # local runs have no migration step
        await create_tables(engine)

    browser_session = BrowserSession()
    queue_service = create_queue_service(settings, SessionLocal, browser_session=browser_session)
    app.state.queue_service = queue_service

    if settings.WORKER_ENABLED:
        await queue_service.start_worker()

    try:
        yield
    finally:
        logger.info("Shutting down scan queue...")
        await queue_service.stop_worker()
        await browser_session.close()
        await engine.dispose()


app = FastAPI(
    title=f"{settings.APP_NAME} API",
    description="Queued, browser-driven GDPR consent compliance scans",
    version="1.0.0",
    debug=settings.DEBUG,
    lifespan=lifespan,
)


# Root endpoint for basic info
@app.get("/", tags=["Info"])
def root():
    return {
        "app_name": f"{settings.APP_NAME} API",
        "description": "Scans websites for cookie consent and privacy compliance issues.",
        "version": "1.0.0",
        "docs_url": "/docs",
        "api_base": settings.API_V1_PREFIX,
    }


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

add_exception_handlers(app)

app.include_router(health_router)
app.include_router(api_router, prefix=settings.API_V1_PREFIX)
