"""PostgreSQL repository adapter for ward task persistence.

This adapter implements ITaskRepository over the ``tasks`` table. Rows are
returned as plain dictionaries for the field mapper.
"""

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from ...api.database import database_connection
from ..domain.ports import ITaskRepository

if TYPE_CHECKING:
    import asyncpg

logger = logging.getLogger(__name__)

TASK_COLUMNS = (
    "id, title, reason, priority, action, status, room_id, source_room_id, "
    "assigned_to_id, equipment_id, created_at, updated_at, started_at, completed_at"
)

INSERTABLE_COLUMNS = (
    "title",
    "reason",
    "priority",
    "action",
    "status",
    "room_id",
    "source_room_id",
    "assigned_to_id",
    "equipment_id",
)


class PostgresTaskRepository(ITaskRepository):
    """PostgreSQL implementation of ITaskRepository."""

    def __init__(self, pool: "asyncpg.Pool"):
        """Initialize the repository.

        Args:
            pool: asyncpg connection pool for database operations
        """
        self.pool = pool

    async def fetch_active_since(
        self,
        since: datetime,
        statuses: list[str],
    ) -> list[dict[str, Any]]:
        async with database_connection(self.pool) as conn:
            rows = await conn.fetch(
                f"""
                SELECT {TASK_COLUMNS}
                FROM tasks
                WHERE status = ANY($1::text[])
                  AND created_at >= $2
                ORDER BY created_at DESC
                """,
                statuses,
                since,
            )
        return [dict(row) for row in rows]

    async def insert_task(self, record: dict[str, Any]) -> dict[str, Any]:
        """Insert a task; only known columns are written."""
        columns = [c for c in INSERTABLE_COLUMNS if record.get(c) is not None]
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        values = [record[c] for c in columns]

        async with database_connection(self.pool) as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO tasks ({", ".join(columns)}, created_at, updated_at)
                VALUES ({placeholders}, NOW(), NOW())
                RETURNING {TASK_COLUMNS}
                """,
                *values,
            )
        logger.debug(f"Inserted task {row['id']}")
        return dict(row)

    async def update_status(
        self,
        task_id: str,
        status: str,
        started_at: datetime | None = None,
        completed_at: datetime | None = None,
    ) -> dict[str, Any] | None:
        async with database_connection(self.pool) as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE tasks
                SET status = $2,
                    updated_at = NOW(),
                    started_at = COALESCE(started_at, $3),
                    completed_at = COALESCE($4, completed_at)
                WHERE id::text = $1
                RETURNING {TASK_COLUMNS}
                """,
                task_id,
                status,
                started_at,
                completed_at,
            )
        return dict(row) if row is not None else None
