"""Router exports for FastAPI composition."""

from . import entries, health, images

__all__ = ["entries", "health", "images"]
