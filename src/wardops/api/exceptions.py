#!/usr/bin/env python3
"""Exception Hierarchy for WardOps.

This module provides a structured exception hierarchy for handling errors
across the agent orchestrator, the completion provider client, the tool
executor, the task synchronization engine, and the database layer.

Design Principles:
    - All exceptions inherit from WardOpsError base class
    - Exceptions preserve context (original error, timestamps, details)
    - Exceptions are categorized by recoverability
    - Each exception includes actionable information

Exception Hierarchy:
    WardOpsError (base)
    ├── ConfigurationError (unrecoverable - fix config)
    │   └── MessageValidationError
    ├── CompletionError (provider call failed)
    │   ├── ClientRequestError (4xx, never retried)
    │   ├── ServerError (5xx, retried)
    │   ├── NetworkError (transport, retried)
    │   └── MalformedResponseError (terminal for the model)
    ├── AgentRunError (terminal for the whole request)
    │   ├── RequestRejectedError
    │   └── ModelLadderExhaustedError
    ├── OrchestratorClosedError
    ├── ToolError (always captured into a tool result)
    │   ├── ToolArgumentError
    │   └── ToolExecutionError
    ├── SyncError
    │   ├── SubscriptionError
    │   └── InvalidTransitionError
    └── DatabaseError (may be recoverable)
        ├── ConnectionPoolError
        ├── TransactionError
        └── IntegrityError
"""
from datetime import datetime, timezone
from typing import Any, Optional

# ============================================
# Base Exception
# ============================================

class WardOpsError(Exception):
    """Base exception for all WardOps errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "SERVER_ERROR")
        details: Additional context as a dictionary
        timestamp: When the error occurred
        cause: The original exception that caused this error
        recoverable: Whether this error might be recoverable with retry
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__.upper()
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)
        self.cause = cause
        self.recoverable = recoverable

        if cause:
            self.__cause__ = cause

    def __str__(self) -> str:
        parts = [self.message]
        if self.code:
            parts.insert(0, f"[{self.code}]")
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            parts.append(f"({detail_str})")
        return " ".join(parts)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"details={self.details!r}, "
            f"recoverable={self.recoverable})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "recoverable": self.recoverable,
            "cause": str(self.cause) if self.cause else None,
        }


# ============================================
# Configuration Errors (Unrecoverable)
# ============================================

class ConfigurationError(WardOpsError):
    """Raised when configuration is missing or invalid.

    These errors require fixing configuration before retry.
    """

    def __init__(
        self,
        message: str,
        missing_keys: Optional[list[str]] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if missing_keys:
            details["missing_keys"] = missing_keys
        kwargs.setdefault("code", "CONFIGURATION_ERROR")
        super().__init__(
            message,
            details=details,
            recoverable=False,
            **kwargs,
        )
        self.missing_keys = missing_keys or []


class MessageValidationError(ConfigurationError):
    """Raised when a conversation message fails validation.

    Raised before any network request is made, never retried.
    """

    def __init__(
        self,
        message: str,
        index: Optional[int] = None,
        role: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if index is not None:
            details["index"] = index
        if role is not None:
            details["role"] = role
        super().__init__(
            message,
            code="MESSAGE_VALIDATION_ERROR",
            details=details,
            **kwargs,
        )
        self.index = index
        self.role = role


# ============================================
# Completion Provider Errors
# ============================================

class CompletionError(WardOpsError):
    """Base class for failures of a single completion request.

    Attributes:
        model: Model identifier the request was sent to
    """

    def __init__(self, message: str, model: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if model:
            details["model"] = model
        super().__init__(message, details=details, **kwargs)
        self.model = model


class ClientRequestError(CompletionError):
    """Raised when the provider rejects the request (HTTP 4xx).

    The request itself is wrong; no retry and no fallback can fix it.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        response_body: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details["status_code"] = status_code
        if response_body:
            details["response_body"] = response_body[:500]
        super().__init__(
            message,
            code=f"CLIENT_ERROR_{status_code}",
            details=details,
            recoverable=False,
            **kwargs,
        )
        self.status_code = status_code
        self.response_body = response_body


class ServerError(CompletionError):
    """Raised when the provider returns a 5xx error."""

    def __init__(
        self,
        message: str = "Server error",
        status_code: int = 500,
        response_body: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details["status_code"] = status_code
        if response_body:
            details["response_body"] = response_body[:500]
        super().__init__(
            message,
            code="SERVER_ERROR",
            details=details,
            recoverable=True,
            **kwargs,
        )
        self.status_code = status_code
        self.response_body = response_body


class NetworkError(CompletionError):
    """Raised when the request never produced an HTTP response."""

    def __init__(
        self,
        message: str = "Failed to reach completion provider",
        timeout_seconds: Optional[float] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if timeout_seconds:
            details["timeout_seconds"] = timeout_seconds
        super().__init__(
            message,
            code="NETWORK_ERROR",
            details=details,
            recoverable=True,
            **kwargs,
        )


class MalformedResponseError(CompletionError):
    """Raised when a 2xx response body cannot be decoded or lacks required fields."""

    def __init__(self, message: str = "Malformed completion response", **kwargs):
        super().__init__(
            message,
            code="MALFORMED_RESPONSE",
            recoverable=False,
            **kwargs,
        )


# ============================================
# Orchestration Errors
# ============================================

DEFAULT_USER_FAILURE_MESSAGE = (
    "I encountered an error while processing your request. Please try again."
)


class AgentRunError(WardOpsError):
    """Terminal failure of one orchestrator run.

    Attributes:
        history: Conversation collected up to the failure, already sanitized
        user_message: Single message suitable for showing to the user
    """

    def __init__(
        self,
        message: str,
        history: Optional[list] = None,
        user_message: str = DEFAULT_USER_FAILURE_MESSAGE,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.history = list(history or [])
        self.user_message = user_message


class RequestRejectedError(AgentRunError):
    """Raised when the provider rejected the request with a client error."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="REQUEST_REJECTED", recoverable=False, **kwargs)


class ModelLadderExhaustedError(AgentRunError):
    """Raised when every model in the fallback ladder has failed.

    Attributes:
        attempted_models: Models tried, in ladder order
    """

    def __init__(
        self,
        message: str = "All models in the fallback ladder failed",
        attempted_models: Optional[list[str]] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details["attempted_models"] = attempted_models or []
        super().__init__(
            message,
            code="MODEL_LADDER_EXHAUSTED",
            details=details,
            recoverable=True,
            **kwargs,
        )
        self.attempted_models = attempted_models or []


class OrchestratorClosedError(WardOpsError):
    """Raised when an orchestrator is used or completes work after close()."""

    def __init__(self, message: str = "Orchestrator has been closed", **kwargs):
        super().__init__(message, code="ORCHESTRATOR_CLOSED", **kwargs)


# ============================================
# Tool Errors
# ============================================

class ToolError(WardOpsError):
    """Base class for tool call failures.

    Never escapes the tool executor; converted into a failed ToolResult.
    """

    def __init__(self, message: str, tool_name: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if tool_name:
            details["tool_name"] = tool_name
        kwargs.setdefault("recoverable", True)
        super().__init__(message, details=details, **kwargs)
        self.tool_name = tool_name


class ToolArgumentError(ToolError):
    """Raised when tool arguments cannot be parsed or fail validation."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="TOOL_ARGUMENT_ERROR", **kwargs)


class ToolExecutionError(ToolError):
    """Raised when a domain operation fails while executing a tool."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="TOOL_EXECUTION_ERROR", **kwargs)


# ============================================
# Sync Errors
# ============================================

class SyncError(WardOpsError):
    """Base class for task synchronization errors."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, **kwargs)


class SubscriptionError(SyncError):
    """Raised when the push channel cannot be established or is lost.

    Attributes:
        channel: Name of the push channel
    """

    def __init__(self, message: str, channel: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if channel:
            details["channel"] = channel
        super().__init__(
            message,
            code="SUBSCRIPTION_ERROR",
            details=details,
            recoverable=True,
            **kwargs,
        )
        self.channel = channel


class InvalidTransitionError(SyncError):
    """Raised when a task status change would move the task backward."""

    def __init__(
        self,
        task_id: str,
        current_status: str,
        requested_status: str,
        **kwargs,
    ):
        super().__init__(
            f"Task '{task_id}' cannot move from {current_status} to {requested_status}",
            code="INVALID_TRANSITION",
            details={
                "task_id": task_id,
                "current_status": current_status,
                "requested_status": requested_status,
            },
            recoverable=False,
            **kwargs,
        )
        self.task_id = task_id
        self.current_status = current_status
        self.requested_status = requested_status


# ============================================
# Database Errors
# ============================================

class DatabaseError(WardOpsError):
    """Base class for database-related errors."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)


class ConnectionPoolError(DatabaseError):
    """Raised when database connection pool is exhausted or unavailable."""

    def __init__(
        self,
        message: str = "Database connection pool error",
        **kwargs,
    ):
        super().__init__(message, code="CONNECTION_POOL_ERROR", **kwargs)


class TransactionError(DatabaseError):
    """Raised when database transaction fails."""

    def __init__(
        self,
        message: str = "Database transaction failed",
        operation: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation
        super().__init__(
            message,
            code="TRANSACTION_ERROR",
            details=details,
            **kwargs,
        )


class IntegrityError(DatabaseError):
    """Raised when database integrity constraint is violated."""

    def __init__(
        self,
        message: str = "Database integrity error",
        constraint: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if constraint:
            details["constraint"] = constraint
        super().__init__(
            message,
            code="INTEGRITY_ERROR",
            details=details,
            recoverable=False,
            **kwargs,
        )


__all__ = [
    "WardOpsError",
    "ConfigurationError",
    "MessageValidationError",
    "CompletionError",
    "ClientRequestError",
    "ServerError",
    "NetworkError",
    "MalformedResponseError",
    "DEFAULT_USER_FAILURE_MESSAGE",
    "AgentRunError",
    "RequestRejectedError",
    "ModelLadderExhaustedError",
    "OrchestratorClosedError",
    "ToolError",
    "ToolArgumentError",
    "ToolExecutionError",
    "SyncError",
    "SubscriptionError",
    "InvalidTransitionError",
    "DatabaseError",
    "ConnectionPoolError",
    "TransactionError",
    "IntegrityError",
]
