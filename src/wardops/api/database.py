#!/usr/bin/env python3
"""Database Utilities for WardOps.

This module provides database utilities including:
    - Transaction context managers with automatic commit/rollback
    - Connection pool management
    - Conversion of driver errors into the DatabaseError hierarchy

Example:
    async with database_transaction(pool) as conn:
        await conn.execute("INSERT INTO patients ...")
        await conn.execute("UPDATE rooms ...")
        # Automatic commit on success, rollback on exception
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import asyncpg

from .exceptions import (
    ConnectionPoolError,
    DatabaseError,
    IntegrityError,
    TransactionError,
)

logger = logging.getLogger(__name__)

ACQUIRE_TIMEOUT_SECONDS = 30.0


# ============================================
# Transaction Context Managers
# ============================================

@asynccontextmanager
async def database_transaction(
    pool,
    isolation: str = "read_committed",
    readonly: bool = False,
) -> AsyncIterator[Any]:
    """Context manager for database transactions with automatic commit/rollback.

    Args:
        pool: asyncpg connection pool
        isolation: Transaction isolation level
        readonly: If True, transaction is read-only

    Yields:
        Database connection within transaction

    Raises:
        ConnectionPoolError: If connection cannot be acquired
        TransactionError: If transaction fails
        IntegrityError: If integrity constraint violated
    """
    if pool is None:
        raise ConnectionPoolError("Database connection pool is not initialized")

    conn = await _acquire(pool)
    try:
        transaction = conn.transaction(isolation=isolation, readonly=readonly)
        try:
            await transaction.start()
        except Exception as e:
            raise TransactionError(f"Failed to start transaction: {e}", cause=e)

        try:
            yield conn
            await transaction.commit()
            logger.debug("Transaction committed successfully")
        except Exception as e:
            try:
                await transaction.rollback()
                logger.debug("Transaction rolled back due to exception")
            except Exception as rollback_error:
                logger.error(f"Rollback failed: {rollback_error}")
            raise _convert_db_exception(e)
    finally:
        await pool.release(conn)


@asynccontextmanager
async def database_connection(pool) -> AsyncIterator[Any]:
    """Context manager for a pooled connection without a transaction.

    Driver errors raised inside the block surface as DatabaseError subtypes.

    Example:
        async with database_connection(pool) as conn:
            rows = await conn.fetch("SELECT * FROM tasks LIMIT 10")
    """
    if pool is None:
        raise ConnectionPoolError("Database connection pool is not initialized")

    conn = await _acquire(pool)
    try:
        yield conn
    except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
        raise _convert_db_exception(e)
    finally:
        await pool.release(conn)


async def _acquire(pool):
    try:
        return await asyncio.wait_for(pool.acquire(), timeout=ACQUIRE_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        raise ConnectionPoolError(
            "Timeout acquiring database connection",
            details={"timeout_seconds": ACQUIRE_TIMEOUT_SECONDS},
        )
    except Exception as e:
        raise ConnectionPoolError(
            f"Failed to acquire database connection: {e}",
            cause=e,
        )


# ============================================
# Error Conversion
# ============================================

def _convert_db_exception(e: Exception) -> DatabaseError:
    """Convert a database exception to the matching DatabaseError subtype."""
    if isinstance(e, DatabaseError):
        return e

    error_str = str(e).lower()

    if isinstance(e, asyncpg.UniqueViolationError) or "duplicate" in error_str:
        return IntegrityError(f"Duplicate entry: {e}", constraint="unique", cause=e)

    if isinstance(e, asyncpg.ForeignKeyViolationError) or "foreign key" in error_str:
        return IntegrityError(
            f"Foreign key violation: {e}",
            constraint="foreign_key",
            cause=e,
        )

    if isinstance(e, asyncpg.NotNullViolationError) or "not null" in error_str:
        return IntegrityError(f"Not null violation: {e}", constraint="not_null", cause=e)

    if "deadlock" in error_str:
        return TransactionError(f"Deadlock detected: {e}", operation="transaction", cause=e)

    if "timeout" in error_str or "timed out" in error_str:
        return TransactionError(
            f"Database operation timed out: {e}",
            operation="query",
            cause=e,
        )

    return DatabaseError(f"Database operation failed: {e}", cause=e)


# ============================================
# Connection Pool Helpers
# ============================================

async def create_pool(
    database_url: str,
    min_size: int = 2,
    max_size: int = 10,
    command_timeout: float = 60.0,
    **kwargs,
):
    """Create a database connection pool with error handling.

    Returns:
        asyncpg.Pool instance

    Raises:
        ConnectionPoolError: If pool creation fails
    """
    try:
        pool = await asyncpg.create_pool(
            database_url,
            min_size=min_size,
            max_size=max_size,
            command_timeout=command_timeout,
            **kwargs,
        )
    except Exception as e:
        raise ConnectionPoolError(f"Failed to create database pool: {e}", cause=e)

    logger.info(f"Database pool created (min={min_size}, max={max_size})")
    return pool


async def close_pool(pool, timeout: float = 10.0):
    """Close database pool gracefully, terminating it if close hangs."""
    if pool is None:
        return

    try:
        await asyncio.wait_for(pool.close(), timeout=timeout)
        logger.info("Database pool closed")
    except asyncio.TimeoutError:
        logger.warning(f"Pool close timed out after {timeout}s, terminating")
        pool.terminate()
    except Exception as e:
        logger.error(f"Error closing pool: {e}")
        pool.terminate()


__all__ = [
    "database_transaction",
    "database_connection",
    "create_pool",
    "close_pool",
]
