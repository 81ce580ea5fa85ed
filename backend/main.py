"""
PaperScore API - main entry point.
Creates FastAPI app, sets up lifespan (recognition client, indexes), CORS,
domain error handling and registers all routes.
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, APIRouter, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from paperscore.config import (
    logger,
    get_version_info,
    get_llm_api_key,
    RECOGNITION_MODEL,
    RECOGNITION_RETRY_DELAY_SECONDS,
)
from paperscore.database import client, db
from paperscore.errors import PaperScoreError
from paperscore.routes import register_all_routes
from paperscore.services.llm import GeminiVisionModel
from paperscore.services.recognition import RecognitionClient, SYSTEM_MESSAGE
from paperscore.services.score_store import ScoreStore


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - builds the shared recognition client once"""
    logger.info("🚀 FastAPI app starting up...")

    if get_llm_api_key():
        model = GeminiVisionModel(model_name=RECOGNITION_MODEL, system_message=SYSTEM_MESSAGE)
        app.state.recognition_client = RecognitionClient(model, retry_delay=RECOGNITION_RETRY_DELAY_SECONDS)
        logger.info(f"✅ Recognition client initialized ({RECOGNITION_MODEL})")
    else:
        app.state.recognition_client = None
        logger.warning("⚠️ Recognition client disabled - GEMINI_API_KEY is not set")

    try:
        await ScoreStore(db).ensure_indexes()
    except Exception as e:
        logger.error(f"❌ Could not create score indexes: {e}")

    yield

    logger.info("🛑 FastAPI app shutting down...")
    client.close()


# Create the main app with lifespan
app = FastAPI(title="PaperScore API", lifespan=lifespan)

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


@app.exception_handler(PaperScoreError)
async def paperscore_error_handler(request: Request, exc: PaperScoreError):
    """Map domain errors onto HTTP status codes"""
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# Root-level health check endpoint (for Kubernetes probes)
@app.get("/health")
async def root_health_check():
    """Health check for Kubernetes liveness/readiness probes"""
    return {"status": "healthy", "service": "PaperScore API"}


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
