"""FastAPI application entry point."""

import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..exceptions import TransformerError
from ..models.migration import ENV_PREFIX
from .routes import migrations

logger = logging.getLogger(__name__)

DEFAULT_ORIGINS = "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000"

app = FastAPI(
    title="Forum Transformer API",
    description="Resumable migration of forum boards into ForkBB, one batch per request",
    version=__version__,
)

# Origins of the admin frontend, comma separated
cors_origins = os.environ.get(f"{ENV_PREFIX}CORS_ORIGINS", DEFAULT_ORIGINS)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in cors_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(migrations.router, prefix="/api/migrations", tags=["migrations"])


@app.exception_handler(TransformerError)
async def transformer_error_handler(request: Request, exc: TransformerError):
    """Errors the routes do not map themselves."""
    logger.error(f"{request.method} {request.url.path} failed: {type(exc).__name__}: {exc}")
    return JSONResponse(status_code=500, content={"detail": str(exc), "error": type(exc).__name__})


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}
