"""FastAPI application entry point for the Load Insights API."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from load_insights.app.config import get_settings
from load_insights.app.errors import register_error_handlers
from load_insights.infra.database import init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: initialize database on startup."""
    await init_db()
    settings = get_settings()
    if not settings.gemini_api_key:
        logger.warning("GEMINI_API_KEY not set; extraction endpoints will return 500")
    yield


settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.debug else logging.WARNING,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

app = FastAPI(
    title="Load Insights API",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS middleware: the browser extension calls from its own origin
_cors_origins = settings.cors_origins_list
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=("*" not in _cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# ---------------------------------------------------------------------------
# Route includes
# ---------------------------------------------------------------------------
from load_insights.app.routes.auth import router as auth_router
from load_insights.app.routes.loads import router as loads_router
from load_insights.app.routes.gmail import router as gmail_router
from load_insights.app.routes.crm import router as crm_router
from load_insights.app.routes.assistant import router as assistant_router

app.include_router(auth_router)
app.include_router(loads_router)
app.include_router(gmail_router)
app.include_router(crm_router)
app.include_router(assistant_router)


@app.get("/health", tags=["health"])
async def health_check():
    """Return service health status."""
    return {"status": "ok", "service": "load-insights"}


def run() -> None:
    """Run the application with uvicorn (used by project.scripts entry point)."""
    uvicorn.run(
        "load_insights.app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
