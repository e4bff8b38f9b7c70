"""
Speddy AI Lessons Backend - FastAPI Application

Entry point for the lesson-generation and adjustment-queue API.
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import get_settings, validate_required_settings
from database import get_db_manager
from features.ai_lessons.api import routes as ai_lessons
from shared.api import health, llm_config_routes

settings = get_settings()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Validate configuration on startup
validate_required_settings()

app = FastAPI(
    title="Speddy AI Lessons Backend",
    description="Differentiated special-education lesson generation with a performance-driven adjustment queue",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(llm_config_routes.router)
app.include_router(ai_lessons.router)


@app.on_event("startup")
async def startup_event():
    """Validate database connection on startup."""
    logger.info("Starting Speddy AI Lessons Backend...")

    db_manager = get_db_manager()
    if not db_manager.health_check():
        logger.warning("Database health check failed on startup")
    else:
        logger.info("Database connection healthy")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True
    )
