"""
ScanGrade API - main entry point.
Creates FastAPI app, sets up lifespan, CORS, metrics middleware,
registers all routes.
"""

import os
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, APIRouter, Request
from fastapi.middleware.cors import CORSMiddleware

from app.config import logger, get_version_info, get_llm_api_key, GEMINI_MODEL
from app.deps import get_session_controller
from app.services.metrics import log_api_metric
from app.routes import register_all_routes


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info("🚀 FastAPI app starting up...")
    logger.info("REGISTERED ROUTES: %s", [getattr(r, "path", None) for r in app.routes])
    if get_llm_api_key():
        logger.info(f"✅ OCR model: {GEMINI_MODEL}")
    else:
        logger.warning("⚠️  GEMINI_API_KEY not set - scans will be rejected")
    logger.info("=" * 60)

    yield

    logger.info("🛑 FastAPI app shutting down...")
    get_session_controller().reset()


# Create the main app with lifespan
app = FastAPI(title="ScanGrade API", lifespan=lifespan)

# Create a router with the /api prefix
api_router = APIRouter(prefix="/api")


@api_router.get("/version")
async def get_version():
    """Public version endpoint for deployment verification"""
    return get_version_info()


# Register all route modules on the api_router
register_all_routes(api_router)

# Include the api_router on the app
app.include_router(api_router)


@app.get("/health")
async def root_health_check():
    """Health check for liveness/readiness probes"""
    return {"status": "healthy", "service": "ScanGrade API"}


# ============== METRICS TRACKING MIDDLEWARE ==============

@app.middleware("http")
async def metrics_tracking_middleware(request: Request, call_next):
    """Log timing for all requests"""
    start_time = time.time()
    error_type = None
    status_code = 500

    try:
        response = await call_next(request)
        status_code = response.status_code
    except Exception as e:
        error_type = type(e).__name__
        logger.error(f"Request failed: {str(e)}")
        raise
    finally:
        response_time_ms = int((time.time() - start_time) * 1000)
        log_api_metric(
            endpoint=request.url.path,
            method=request.method,
            response_time_ms=response_time_ms,
            status_code=status_code,
            error_type=error_type,
        )

    return response


# ============== CORS ==============

cors_origins_env = os.environ.get("CORS_ORIGINS")
cors_origins = [origin.strip() for origin in cors_origins_env.split(",")] if cors_origins_env else [
    "http://localhost:3000",
    "http://127.0.0.1:3000"
]

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)
