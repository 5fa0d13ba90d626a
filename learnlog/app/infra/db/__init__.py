"""Database connection helpers."""

from __future__ import annotations

from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from ...config import load_settings


@lru_cache()
def get_engine() -> Engine:
    """Return the process-wide engine, created on first use."""

    settings = load_settings()
    return create_engine(settings.database_url, echo=False, future=True)
