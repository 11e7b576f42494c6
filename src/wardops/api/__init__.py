"""WardOps shared infrastructure.

Exceptions:
    WardOpsError: Base exception for all WardOps errors
    ConfigurationError: Missing or invalid configuration
    CompletionError: Completion request failures (client, server, network, malformed)
    AgentRunError: A conversational run could not produce a reply
    ToolError: Tool argument or execution failures
    SyncError: Task synchronization failures
    DatabaseError: Database operation failures

Resilience:
    BackoffPolicy: Exponential backoff schedule
    retry_async: Retry a coroutine with backoff
    with_timeout: Bound a coroutine by a deadline

Database:
    database_transaction / database_connection: pooled connection context managers
    create_pool / close_pool: asyncpg pool lifecycle
"""
from .database import (
    close_pool,
    create_pool,
    database_connection,
    database_transaction,
)
from .exceptions import (
    AgentRunError,
    ClientRequestError,
    CompletionError,
    ConfigurationError,
    ConnectionPoolError,
    DatabaseError,
    IntegrityError,
    InvalidTransitionError,
    MalformedResponseError,
    MessageValidationError,
    ModelLadderExhaustedError,
    NetworkError,
    OrchestratorClosedError,
    RequestRejectedError,
    ServerError,
    SubscriptionError,
    SyncError,
    ToolArgumentError,
    ToolError,
    ToolExecutionError,
    TransactionError,
    WardOpsError,
)
from .resilience import BackoffPolicy, interruptible_sleep, retry_async, with_timeout

__all__ = [
    # Database
    "close_pool",
    "create_pool",
    "database_connection",
    "database_transaction",
    # Exceptions
    "AgentRunError",
    "ClientRequestError",
    "CompletionError",
    "ConfigurationError",
    "ConnectionPoolError",
    "DatabaseError",
    "IntegrityError",
    "InvalidTransitionError",
    "MalformedResponseError",
    "MessageValidationError",
    "ModelLadderExhaustedError",
    "NetworkError",
    "OrchestratorClosedError",
    "RequestRejectedError",
    "ServerError",
    "SubscriptionError",
    "SyncError",
    "ToolArgumentError",
    "ToolError",
    "ToolExecutionError",
    "TransactionError",
    "WardOpsError",
    # Resilience
    "BackoffPolicy",
    "interruptible_sleep",
    "retry_async",
    "with_timeout",
]
