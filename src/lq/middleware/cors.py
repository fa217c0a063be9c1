"""CORS configuration for the single-page client."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from lq.config import Settings


def setup_cors(app: FastAPI, settings: Settings) -> None:
    """Allow the configured SPA origins to call the API with credentials."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-Id"],
        expose_headers=["X-Request-Id", "X-RateLimit-Remaining", "X-RateLimit-Limit"],
    )
