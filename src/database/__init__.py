"""
Database Session Management

This module provides:
- Engine and session factory construction for the MFA store
- Query timing and slow query logging
"""

import time

import structlog
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base

logger = structlog.get_logger(__name__)

SLOW_QUERY_THRESHOLD_MS = 100


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""
    if database_url.startswith("sqlite") and ":memory:" in database_url:
        return create_engine(
            database_url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
        expire_on_commit=False,
    )


def init_db(engine: Engine) -> None:
    """Create MFA tables if they do not exist."""
    Base.metadata.create_all(bind=engine)


# =============================================================================
# QUERY TIMING & MONITORING
# =============================================================================

@event.listens_for(Engine, "before_cursor_execute")
def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    """Record query start time for timing."""
    conn.info.setdefault("query_start_time", []).append(time.perf_counter())


@event.listens_for(Engine, "after_cursor_execute")
def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    """Log slow queries. Parameters are never logged; they may hold secrets."""
    start_times = conn.info.get("query_start_time", [])
    if not start_times:
        return

    elapsed_ms = (time.perf_counter() - start_times.pop()) * 1000
    if elapsed_ms > SLOW_QUERY_THRESHOLD_MS:
        query_preview = statement[:200] + "..." if len(statement) > 200 else statement
        logger.warning("slow_query", query_time_ms=round(elapsed_ms, 1), query=query_preview)


@event.listens_for(Engine, "handle_error")
def handle_error(exception_context):
    """Log database errors by type only."""
    logger.error(
        "database_error",
        error_type=type(exception_context.original_exception).__name__,
    )


__all__ = [
    "Base",
    "create_db_engine",
    "create_session_factory",
    "init_db",
]
