"""Database engine factory.

This module centralizes database connectivity primitives to enforce the db-layer
boundary for all SQLAlchemy usage.
"""

from sqlalchemy import Engine, create_engine


def db_create_engine(database_url: str, pool_size: int = 5) -> Engine:
    """Create the SQLAlchemy engine for ledger database access.

    Pool size should cover the parallel pair workers used by FIFO migration,
    since each pair transaction holds one connection until commit.

    Args:
        database_url: SQLAlchemy database URL.
        pool_size: Persistent connection pool size.

    Returns:
        Engine: Configured SQLAlchemy engine.

    Raises:
        ValueError: Raised when the database URL is blank or pool size is invalid.
    """

    if not database_url.strip():
        raise ValueError("database_url must not be blank")
    if pool_size < 1:
        raise ValueError("pool_size must be >= 1")

    return create_engine(database_url, pool_pre_ping=True, pool_size=pool_size)
