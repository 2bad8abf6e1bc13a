from fastapi import FastAPI, APIRouter
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging
from app.config import settings
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from app.api import (
    analytics,
    import_transactions,
    intelligence,
    transactions,
)
from app.api.auth import limiter

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    # Startup
    logger.info("Starting Budget Tracker API")
    if not settings.is_ai_configured:
        logger.warning("Azure OpenAI is not configured; AI features will fail until it is")
    from app.database.postgres_db import init_db
    init_db(settings.DATABASE_URL)
    logger.info("Database initialized")

    yield

    # Shutdown
    logger.info("Shutting down...")
    from app.database.postgres_db import close_db
    close_db()


app = FastAPI(
    title="Budget Tracker API",
    description="API for importing bank statements and generating AI budget insights",
    version="1.0.0",
    lifespan=lifespan
)

# Rate limiter state and exception handler
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

api_router = APIRouter(prefix="/api")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

api_router.include_router(transactions.router)
api_router.include_router(import_transactions.router)
api_router.include_router(intelligence.router)
api_router.include_router(analytics.router)

app.include_router(api_router)

# Initialize Prometheus metrics instrumentation
Instrumentator().instrument(app).expose(app)


@app.get("/")
async def root():
    return {
        "message": "Budget Tracker API",
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    uvicorn.run(
        "app.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=True
    )
