from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from flatlist.core.config import settings
from flatlist.core.database import Base, get_engine, check_database_connection
from flatlist.api import api_router
from flatlist import models  # noqa: F401  Ensure tables are registered
from flatlist.services.pipeline import build_pipeline

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.DEBUG else logging.WARNING,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle manager."""
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    Base.metadata.create_all(bind=get_engine())
    logger.info("Database tables created/verified")

    # A pipeline may be injected before startup (tests, embedding)
    pipeline = getattr(app.state, "pipeline", None) or build_pipeline()
    app.state.pipeline = pipeline
    await pipeline.start()

    recovered = pipeline.recover_pending()
    logger.info(f"Task queues running ({recovered} pending listings recovered)")

    yield

    # Shutdown
    logger.info("Shutting down, draining task queues...")
    await pipeline.stop()


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Listing enrichment, geocoding, preference matching and search",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(api_router, prefix="/api/v1")


@app.get("/")
def root():
    """Service identity."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "healthy"
    }


@app.get("/health")
def health_check():
    """Detailed health check."""
    database_ok = check_database_connection()
    pipeline = getattr(app.state, "pipeline", None)
    return {
        "status": "healthy" if database_ok else "degraded",
        "database": "connected" if database_ok else "unreachable",
        "queues": [
            pipeline.enrichment_queue.stats(),
            pipeline.comparison_queue.stats(),
        ] if pipeline else [],
        "version": settings.APP_VERSION
    }
