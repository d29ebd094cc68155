"""planchat - FastAPI application."""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from planchat.api import api_router
from planchat.api.planning import limiter
from planchat.config import get_config_dict, settings
from planchat.database import close_db, init_db
from planchat.logging_config import setup_logging

# Configure logging early
setup_logging(debug=settings.debug, json_logs=not settings.debug)

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service status")
    version: str = Field(description="Application version")
    planning_api_configured: bool = Field(description="Whether the planning backend URL is set")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler with graceful shutdown."""
    logger.info("planchat starting up...")

    await init_db()
    logger.info("Database initialized")

    yield

    logger.info("planchat shutting down...")

    client = getattr(app.state, "planning_client", None)
    if client is not None:
        try:
            await client.aclose()
        except Exception as e:
            logger.error(f"Error closing planning client: {e}")

    try:
        await close_db()
        logger.info("Database connections closed")
    except Exception as e:
        logger.error(f"Error closing database: {e}")

    logger.info("planchat shutdown complete")


app = FastAPI(
    title=settings.app_name,
    version=VERSION,
    description="Planning chat relay: streams planning conversations with the "
    "orchestration backend and approves the resulting plans.",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "planning", "description": "Planning chat streaming and approval"},
    ],
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all HTTP requests with timing information."""
    start_time = time.time()

    response = await call_next(request)

    duration_ms = (time.time() - start_time) * 1000

    path = request.url.path
    if path != "/health":
        logger.info(
            "http_request",
            extra={
                "method": request.method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
                "client_ip": request.client.host if request.client else "unknown",
            },
        )

    return response


app.include_router(api_router)


@app.get("/health", response_model=HealthResponse, tags=["health"])
async def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="ok",
        version=VERSION,
        planning_api_configured=bool(settings.planning_api_url),
    )


@app.get("/api/config", tags=["health"])
async def config() -> dict:
    """Non-secret configuration for clients."""
    return get_config_dict()


def main():
    """Run the application."""
    import uvicorn

    uvicorn.run(
        "planchat.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
