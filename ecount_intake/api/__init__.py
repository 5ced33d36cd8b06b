"""API package."""

from .routes import router, close_shared_pipeline

__all__ = ["router", "close_shared_pipeline"]
