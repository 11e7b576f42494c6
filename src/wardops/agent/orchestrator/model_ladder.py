"""
Model fallback ladder.

A pure state machine deciding what to try after each completion attempt.
It performs no I/O and holds no clock; the orchestrator sleeps for the
returned backoff delay and performs the request.

    SUCCESS            -> done
    CLIENT_ERROR       -> done (aborted, no other model tried)
    SERVER_ERROR       -> same model again while retries remain,
    NETWORK_ERROR         then once more without tools (if tools were sent),
                          then the next model with a fresh retry budget
    MALFORMED_RESPONSE -> next model
    end of ladder      -> done (exhausted)
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Union

from ...api.exceptions import (
    ClientRequestError,
    CompletionError,
    MalformedResponseError,
    NetworkError,
    ServerError,
)
from ...api.resilience import BackoffPolicy


class AttemptOutcome(str, Enum):
    SUCCESS = "success"
    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"
    NETWORK_ERROR = "network_error"
    MALFORMED_RESPONSE = "malformed_response"

    @classmethod
    def from_error(cls, error: CompletionError) -> AttemptOutcome:
        if isinstance(error, ClientRequestError):
            return cls.CLIENT_ERROR
        if isinstance(error, ServerError):
            return cls.SERVER_ERROR
        if isinstance(error, NetworkError):
            return cls.NETWORK_ERROR
        if isinstance(error, MalformedResponseError):
            return cls.MALFORMED_RESPONSE
        return cls.SERVER_ERROR


class LadderResult(str, Enum):
    SUCCEEDED = "succeeded"
    ABORTED = "aborted"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class LadderPolicy:
    """Static configuration of the ladder.

    Attributes:
        models: Model identifiers in preference order
        max_retries: Same-model retries after the first attempt
        backoff: Delay policy for same-model retries
    """

    models: tuple[str, ...]
    max_retries: int = 3
    backoff: BackoffPolicy = BackoffPolicy()

    def __post_init__(self):
        if not self.models:
            raise ValueError("Model ladder needs at least one model")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")


@dataclass(frozen=True)
class ModelAttempt:
    """The next request to make.

    Attributes:
        model: Model to call
        ladder_index: Position of ``model`` in the ladder
        retries_remaining: Same-model retries left after this attempt
        with_tools: Whether tool schemas are sent
        delay: Seconds to wait before making this attempt
    """

    model: str
    ladder_index: int
    retries_remaining: int
    with_tools: bool
    delay: float = 0.0


@dataclass(frozen=True)
class LadderDone:
    result: LadderResult
    last_model: str


LadderState = Union[ModelAttempt, LadderDone]


def first_attempt(policy: LadderPolicy, with_tools: bool, start_index: int = 0) -> ModelAttempt:
    """Initial state, optionally starting part-way down the ladder."""
    index = min(max(start_index, 0), len(policy.models) - 1)
    return ModelAttempt(
        model=policy.models[index],
        ladder_index=index,
        retries_remaining=policy.max_retries,
        with_tools=with_tools,
    )


def next_attempt(
    state: ModelAttempt,
    outcome: AttemptOutcome,
    policy: LadderPolicy,
    tools_requested: Optional[bool] = None,
) -> LadderState:
    """Transition after ``state`` finished with ``outcome``.

    Args:
        state: The attempt that just completed
        outcome: How it ended
        policy: Ladder configuration
        tools_requested: Whether the caller wants tools on fresh models;
            defaults to ``state.with_tools``
    """
    if tools_requested is None:
        tools_requested = state.with_tools

    if outcome is AttemptOutcome.SUCCESS:
        return LadderDone(LadderResult.SUCCEEDED, state.model)

    if outcome is AttemptOutcome.CLIENT_ERROR:
        return LadderDone(LadderResult.ABORTED, state.model)

    if outcome in (AttemptOutcome.SERVER_ERROR, AttemptOutcome.NETWORK_ERROR):
        if state.retries_remaining > 0:
            retry_number = policy.max_retries - state.retries_remaining
            return replace(
                state,
                retries_remaining=state.retries_remaining - 1,
                delay=policy.backoff.delay_for(retry_number),
            )
        if state.with_tools:
            return replace(state, with_tools=False, delay=0.0)

    return _advance(state, policy, tools_requested)


def _advance(state: ModelAttempt, policy: LadderPolicy, with_tools: bool) -> LadderState:
    index = state.ladder_index + 1
    if index >= len(policy.models):
        return LadderDone(LadderResult.EXHAUSTED, state.model)
    return ModelAttempt(
        model=policy.models[index],
        ladder_index=index,
        retries_remaining=policy.max_retries,
        with_tools=with_tools,
    )
