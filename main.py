"""
FastAPI Main Application

This script mounts the brain routes, starts the brain scheduler with the
application lifespan and runs the FastAPI server on port 8000.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
import uvicorn
import logging
from datetime import datetime

# Import modules
from utils import database, schemas
from brain import api as brain_api
from brain import runtime

# Setup logging with timestamps
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the brain scheduler on startup and stop it on shutdown."""
    scheduler = None
    if runtime.scheduler_enabled():
        try:
            scheduler = runtime.get_scheduler()
            scheduler.start()
        except Exception as e:
            logger.error(f"Brain scheduler not started: {e}", exc_info=True)
            scheduler = None
    else:
        logger.info("BRAIN_SCHEDULER_ENABLED is false, brain cycles run only on demand")

    yield

    if scheduler is not None:
        await scheduler.stop()


# Create FastAPI app instance
app = FastAPI(
    title="Coach Brain API",
    description="Automated retention outreach for gym clients over WhatsApp",
    version="1.0.0",
    lifespan=lifespan
)

app.include_router(brain_api.router)


@app.get("/", response_model=schemas.RootResponse)
async def root():
    """Root endpoint."""
    logger.info("GET / - Root endpoint called")
    return schemas.RootResponse(message="Coach Brain API is running")


@app.get("/health", response_model=schemas.HealthResponse)
async def health():
    """
    Health check endpoint.

    Returns:
        Health status with scheduler state and database connectivity
    """
    logger.info("GET /health - Health check endpoint called")
    scheduler_state = "enabled" if runtime.scheduler_enabled() else "disabled"
    try:
        client = database.get_supabase_client()
        client.table("tenants").select("id").limit(1).execute()
        return schemas.HealthResponse(status="healthy", scheduler=scheduler_state, database="connected")
    except Exception as e:
        logger.error(f"Health check failed at {datetime.now().strftime('%H:%M:%S')}: {e}")
        return schemas.HealthResponse(
            status="unhealthy",
            scheduler=scheduler_state,
            database="disconnected",
            error=str(e)
        )


if __name__ == "__main__":
    # Run the server on port 8000
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=False
    )
