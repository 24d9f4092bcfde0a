"""CORS for the learning front-ends."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from markano.config import Settings


def setup_cors(app: FastAPI, settings: Settings) -> None:
    """Allow the configured portal origins to call the API."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-Id", "X-RateLimit-Remaining", "X-RateLimit-Limit", "Retry-After"],
    )
