"""Database and Redis configuration and session management.

This module lazily builds the SQLAlchemy engine, the session factory and
the declarative base, and provides the database session dependency for
FastAPI routes. It also owns the shared Redis client used for OTP records
and rate limiting.
"""

import logging
from functools import lru_cache

import redis.asyncio as redis
from fakeredis.aioredis import FakeRedis
from sqlalchemy import create_engine, make_url
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base

from .core import get_settings
from .errors import ServiceUnavailableError

logger = logging.getLogger(__name__)


SessionLocal = sessionmaker(
    autoflush=False,
    autocommit=False,
    future=True,
)
"""Factory for database sessions, bound to the engine per session."""


Base = declarative_base()
"""Declarative base class for SQLAlchemy models."""


@lru_cache()
def get_engine() -> Engine:
    """
    Return the SQLAlchemy engine bound to the configured database URL.

    Raises:
        ServiceUnavailableError: If ``DATABASE_URL`` is not configured.
    """
    settings = get_settings()
    if not settings.DATABASE_URL:
        raise ServiceUnavailableError(
            "Database service unavailable - DATABASE_URL is not configured"
        )
    url = settings.DATABASE_URL
    if url.startswith("sqlite"):
        options = {}
        # in-memory databases use a single-connection pool with no checkout wait
        if make_url(url).database not in (None, "", ":memory:"):
            options["pool_timeout"] = settings.DB_TIMEOUT
        return create_engine(
            url,
            future=True,
            connect_args={"check_same_thread": False, "timeout": settings.DB_TIMEOUT},
            **options,
        )
    return create_engine(
        url,
        future=True,
        pool_pre_ping=True,
        pool_timeout=settings.DB_TIMEOUT,
        connect_args={"connect_timeout": int(settings.DB_TIMEOUT)},
    )


def init_db() -> None:
    """Create missing tables when a database is configured."""
    if not get_settings().DATABASE_URL:
        logger.warning("DATABASE_URL is not set; store-backed routes will answer 503")
        return
    from . import models  # noqa: F401  registers the tables on Base

    Base.metadata.create_all(bind=get_engine())


def get_db():
    """
    Provide a SQLAlchemy database session.

    This function is used as a FastAPI dependency.
    It yields a database session and ensures it is
    properly closed after the request is completed.
    """

    db = SessionLocal(bind=get_engine())
    try:
        yield db
    finally:
        db.close()


_redis_client = None


async def get_redis():
    """
    Return the shared Redis client, connecting on first use.

    When the server cannot be reached and ``REDIS_ALLOW_INMEMORY`` is set, an
    in-process fakeredis instance takes its place.

    Raises:
        ServiceUnavailableError: If Redis is unreachable and no fallback is allowed.
    """
    global _redis_client
    if _redis_client is not None:
        return _redis_client
    settings = get_settings()
    client = redis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=settings.REDIS_TIMEOUT,
        socket_connect_timeout=settings.REDIS_TIMEOUT,
    )
    try:
        await client.ping()
    except redis.RedisError as exc:
        if not settings.REDIS_ALLOW_INMEMORY:
            raise ServiceUnavailableError("Key-value store unavailable") from exc
        logger.warning("Redis unreachable (%s); using in-process fakeredis", exc)
        client = FakeRedis(decode_responses=True)
    _redis_client = client
    return client


async def close_redis() -> None:
    """Close and forget the shared Redis client."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
