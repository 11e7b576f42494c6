"""PostgreSQL push channel for task changes.

Implements ITaskChangeFeed with LISTEN/NOTIFY on a dedicated asyncpg
connection. A trigger on ``tasks`` (see TASK_CHANGES_TRIGGER_SQL) publishes
one JSON payload per row change:

    {"op": "INSERT" | "UPDATE" | "DELETE", "new": {...} | null, "old": {...} | null}
"""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

import asyncpg

from ...api.exceptions import SubscriptionError
from ...api.resilience import with_timeout
from ..domain.entities import ChangeKind, ChannelStatus, TaskChangeEvent
from ..domain.ports import ITaskChangeFeed

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL = "task_changes"

TASK_CHANGES_TRIGGER_SQL = """
CREATE OR REPLACE FUNCTION notify_task_change() RETURNS trigger AS $$
BEGIN
    PERFORM pg_notify(
        'task_changes',
        json_build_object(
            'op', TG_OP,
            'new', CASE WHEN TG_OP = 'DELETE' THEN NULL ELSE row_to_json(NEW) END,
            'old', CASE WHEN TG_OP = 'INSERT' THEN NULL ELSE row_to_json(OLD) END
        )::text
    );
    RETURN NULL;
END;
$$ LANGUAGE plpgsql;

DROP TRIGGER IF EXISTS tasks_notify_change ON tasks;
CREATE TRIGGER tasks_notify_change
    AFTER INSERT OR UPDATE OR DELETE ON tasks
    FOR EACH ROW EXECUTE FUNCTION notify_task_change();
"""


async def install_trigger(conn: "asyncpg.Connection") -> None:
    """Create (or replace) the notification trigger on the tasks table."""
    await conn.execute(TASK_CHANGES_TRIGGER_SQL)
    logger.info("Installed task change trigger")


def parse_notification(payload: str) -> TaskChangeEvent:
    """Decode one NOTIFY payload.

    Raises:
        ValueError: If the payload is not a recognized change event
    """
    try:
        data: dict[str, Any] = json.loads(payload)
    except json.JSONDecodeError as e:
        raise ValueError(f"Task change payload is not JSON: {e}") from e

    try:
        kind = ChangeKind(str(data.get("op", "")).upper())
    except ValueError as e:
        raise ValueError(f"Unknown task change operation: {data.get('op')!r}") from e

    return TaskChangeEvent(
        kind=kind,
        record=data.get("new"),
        old_record=data.get("old"),
        received_at=datetime.now(timezone.utc),
    )


class PostgresTaskChangeFeed(ITaskChangeFeed):
    """LISTEN/NOTIFY implementation of ITaskChangeFeed.

    Example:
        feed = PostgresTaskChangeFeed(settings.database_url)
        await feed.subscribe(on_change, on_status)
    """

    def __init__(
        self,
        database_url: str,
        channel: str = DEFAULT_CHANNEL,
        connect_timeout: float = 10.0,
        connect: Callable[..., Awaitable[Any]] = asyncpg.connect,
    ):
        """Initialize the feed.

        Args:
            database_url: PostgreSQL connection string
            channel: NOTIFY channel name
            connect_timeout: Seconds to wait for the listener connection
            connect: Connection factory (asyncpg.connect)
        """
        self.database_url = database_url
        self.channel = channel
        self.connect_timeout = connect_timeout
        self._connect = connect
        self._conn = None
        self._on_change: Callable[[TaskChangeEvent], None] | None = None
        self._on_status: Callable[[ChannelStatus], None] | None = None
        self._closing = False

    async def subscribe(
        self,
        on_change: Callable[[TaskChangeEvent], None],
        on_status: Callable[[ChannelStatus], None],
    ) -> None:
        """Open the listener connection and start delivering events.

        Raises:
            SubscriptionError: If the connection or LISTEN fails
        """
        self._on_change = on_change
        self._on_status = on_status
        self._closing = False

        try:
            self._conn = await with_timeout(
                self._connect, self.connect_timeout, self.database_url
            )
            await self._conn.add_listener(self.channel, self._handle_notification)
        except Exception as e:
            await self._close_connection()
            on_status(ChannelStatus.TIMED_OUT if isinstance(e, asyncio.TimeoutError) else ChannelStatus.CHANNEL_ERROR)
            raise SubscriptionError(
                f"Failed to listen on '{self.channel}': {e}",
                channel=self.channel,
                cause=e,
            )

        self._conn.add_termination_listener(self._handle_termination)
        logger.info(f"Listening for task changes on '{self.channel}'")
        on_status(ChannelStatus.SUBSCRIBED)

    async def unsubscribe(self) -> None:
        self._closing = True
        await self._close_connection()
        self._on_change = None
        self._on_status = None

    async def _close_connection(self) -> None:
        conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            if not conn.is_closed():
                await conn.remove_listener(self.channel, self._handle_notification)
                await conn.close()
        except Exception as e:
            logger.warning(f"Error closing task change listener: {e}")

    def _handle_notification(self, connection, pid: int, channel: str, payload: str) -> None:
        if self._on_change is None:
            return
        try:
            event = parse_notification(payload)
        except ValueError as e:
            logger.warning(f"Ignoring task change notification: {e}")
            return
        self._on_change(event)

    def _handle_termination(self, connection) -> None:
        if self._closing or self._on_status is None:
            return
        logger.warning(f"Task change listener connection on '{self.channel}' terminated")
        self._conn = None
        self._on_status(ChannelStatus.CLOSED)
