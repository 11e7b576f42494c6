"""Update-source selection for task synchronization.

Exactly one source is authoritative at a time, so push and poll updates are
never merged:

    AWAITING_PUSH --push confirmed--> PUSH
    AWAITING_PUSH --fallback timeout--> POLLING
    POLLING       --push confirmed--> PUSH
    PUSH          --push lost-------> AWAITING_PUSH

Push events are accepted while awaiting or in PUSH; poll results only in
POLLING. A result whose source lost authority while it was in flight is
discarded by the caller.
"""

import logging
from enum import Enum

logger = logging.getLogger(__name__)


class SyncSource(str, Enum):
    AWAITING_PUSH = "awaiting_push"
    PUSH = "push"
    POLLING = "polling"


class UpdateOrigin(str, Enum):
    PUSH = "push"
    POLL = "poll"
    LOCAL = "local"


class SyncSourceSelector:
    """Owns the decision of which channel may mutate the live task map."""

    def __init__(self):
        self._state = SyncSource.AWAITING_PUSH
        self._generation = 0

    @property
    def state(self) -> SyncSource:
        return self._state

    @property
    def generation(self) -> int:
        """Increments on every switch; lets callers detect stale in-flight work."""
        return self._generation

    @property
    def is_polling(self) -> bool:
        return self._state is SyncSource.POLLING

    @property
    def is_connected(self) -> bool:
        return self._state in (SyncSource.PUSH, SyncSource.POLLING)

    def push_confirmed(self) -> bool:
        """Record a push confirmation. Returns True if the state changed."""
        return self._switch(SyncSource.PUSH)

    def push_lost(self) -> bool:
        if self._state is not SyncSource.PUSH:
            return False
        return self._switch(SyncSource.AWAITING_PUSH)

    def fallback_elapsed(self) -> bool:
        """The push channel missed its deadline; start polling if still waiting."""
        if self._state is not SyncSource.AWAITING_PUSH:
            return False
        return self._switch(SyncSource.POLLING)

    def accepts(self, origin: UpdateOrigin) -> bool:
        if origin is UpdateOrigin.LOCAL:
            return True
        if origin is UpdateOrigin.PUSH:
            return self._state in (SyncSource.AWAITING_PUSH, SyncSource.PUSH)
        return self._state is SyncSource.POLLING

    def _switch(self, new_state: SyncSource) -> bool:
        if new_state is self._state:
            return False
        logger.info(f"Task sync source: {self._state.value} -> {new_state.value}")
        self._state = new_state
        self._generation += 1
        return True
