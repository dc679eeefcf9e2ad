"""API middleware package."""

from src.relay.api.middleware.logging import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
