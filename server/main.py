"""
FastAPI backend for the trip planner's AI features.

AI calls are deduplicated per trip and query type by the AI result cache;
expired entries are swept in the background.
"""

# Performance: Install uvloop if available (Linux/macOS only)
try:
    import uvloop
    uvloop.install()
except ImportError:
    pass  # Windows - uvloop not available, use default asyncio

from datetime import datetime
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, ORJSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.container import container
from core.logging import configure_logging, get_logger
from routers import ai

settings = container.settings()
configure_logging(settings)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    logger.info("Starting trip planner AI service")

    if settings.ai_cache_backend == "sql":
        await container.database().startup()
    await container.cleanup_service().start()

    logger.info("Services started successfully",
                cache_backend=container.cache_backend().name)
    yield

    await container.cleanup_service().stop()
    await container.database().shutdown()
    logger.info("Services shutdown complete")


app = FastAPI(
    title="Trip Planner AI Service",
    version="1.0.0",
    description="Cached AI research, comparison and suggestions for trip plans",
    lifespan=lifespan,
    default_response_class=ORJSONResponse
)


class CatchAllExceptionsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error("Unhandled exception", error_type=type(e).__name__,
                         error=str(e), exc_info=True)
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"error": "Internal server error"}
            )


app.add_middleware(CatchAllExceptionsMiddleware)

# CORS must be added after the exception middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ai.router)


@app.get("/health")
async def health_check():
    """Service health with cache backend and sweeper state."""
    backend = container.cache_backend()
    return {
        "status": "OK",
        "service": "trip-planner-ai",
        "environment": "development" if settings.is_development else "production",
        "cache_backend": backend.name,
        "cache_available": backend.is_available(),
        "cleanup_running": container.cleanup_service().running,
        "timestamp": datetime.now().isoformat()
    }


if __name__ == "__main__":
    import uvicorn
    logger.info("Starting trip planner AI service",
                host=settings.host, port=settings.port, debug=settings.debug)
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
