"""Main FastAPI application entry point."""
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from retake_engine import config
from retake_engine.api.routes import router
from retake_engine.database import SessionLocal, init_db
from retake_engine.services.catalog import seed_default_management_statuses

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create database tables
    init_db()
    if config.SEED_MANAGEMENT_STATUSES:
        db = SessionLocal()
        try:
            seed_default_management_statuses(db)
        finally:
            db.close()
    yield


# Create FastAPI app
app = FastAPI(
    title="Retake Engine",
    description="Retake lifecycle, audit trail and at-risk aggregation for academy operations.",
    version="0.1.0",
    lifespan=lifespan,
)

# Enable CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # For MVP - restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log method, path, status and duration of every request."""
    start = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        logger.exception(f"{request.method} {request.url.path} failed")
        raise
    duration_ms = (time.perf_counter() - start) * 1000
    level = logging.ERROR if response.status_code >= 500 else logging.WARNING if response.status_code >= 400 else logging.INFO
    logger.log(level, f"{request.method} {request.url.path} -> {response.status_code} ({duration_ms:.1f} ms)")
    return response


# Include API routes
app.include_router(router, prefix="/api", tags=["Retakes"])


# Health check
@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "Retake Engine"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
