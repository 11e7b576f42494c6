"""Environment configuration for WardOps.

Settings are read from environment variables (``main.py`` loads ``.env``
first with python-dotenv). Each section builds the runtime config object
its component expects.
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from .agent.orchestrator.agent import DEFAULT_MODEL_LADDER, AgentConfig
from .agent.providers.base import CompletionProviderConfig
from .api.exceptions import ConfigurationError
from .sync.use_cases.task_sync import TaskSyncConfig

logger = logging.getLogger(__name__)

DEFAULT_OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


def _parse(env: Mapping[str, str], key: str, default, cast):
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw.strip())
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid value for {key}: {raw!r}",
            details={"key": key},
            cause=e,
        )


def _parse_ladder(raw: str) -> tuple[str, ...]:
    models = tuple(m.strip() for m in raw.split(",") if m.strip())
    if not models:
        raise ValueError("model ladder is empty")
    return models


@dataclass
class AgentSettings:
    """Conversational agent settings (OPENROUTER_* and WARDOPS_*)."""

    api_key: str | None = None
    base_url: str = DEFAULT_OPENROUTER_BASE_URL
    models: tuple[str, ...] = DEFAULT_MODEL_LADDER
    max_retries: int = 3
    retry_base_delay: float = 1.0
    history_limit: int = 10
    max_tool_iterations: int = 10
    request_timeout: float = 60.0

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "AgentSettings":
        env = os.environ if env is None else env
        return cls(
            api_key=env.get("OPENROUTER_API_KEY") or None,
            base_url=_parse(env, "OPENROUTER_BASE_URL", DEFAULT_OPENROUTER_BASE_URL, str),
            models=_parse(env, "WARDOPS_MODEL_LADDER", DEFAULT_MODEL_LADDER, _parse_ladder),
            max_retries=_parse(env, "WARDOPS_MAX_RETRIES", 3, int),
            retry_base_delay=_parse(env, "WARDOPS_RETRY_BASE_DELAY", 1.0, float),
            history_limit=_parse(env, "WARDOPS_HISTORY_LIMIT", 10, int),
            max_tool_iterations=_parse(env, "WARDOPS_MAX_TOOL_ITERATIONS", 10, int),
            request_timeout=_parse(env, "WARDOPS_REQUEST_TIMEOUT", 60.0, float),
        )

    def provider_config(self) -> CompletionProviderConfig:
        """Provider config; requires OPENROUTER_API_KEY.

        Raises:
            ConfigurationError: If the API key is missing
        """
        if not self.api_key:
            raise ConfigurationError(
                "OPENROUTER_API_KEY is required for chat",
                missing_keys=["OPENROUTER_API_KEY"],
            )
        return CompletionProviderConfig(
            api_key=self.api_key,
            base_url=self.base_url,
            timeout=self.request_timeout,
        )

    def agent_config(self) -> AgentConfig:
        return AgentConfig(
            models=self.models,
            max_retries=self.max_retries,
            retry_base_delay=self.retry_base_delay,
            history_limit=self.history_limit,
            max_tool_iterations=self.max_tool_iterations,
        )

    def __repr__(self) -> str:
        return (
            f"AgentSettings(models={list(self.models)}, "
            f"retries={self.max_retries}, "
            f"api_key={'set' if self.api_key else 'missing'})"
        )


@dataclass
class SyncSettings:
    """Task synchronization timing (TASK_SYNC_*), in seconds."""

    fallback_timeout: float = 5.0
    poll_interval: float = 3.0
    tick_interval: float = 1.0
    grace_period: float = 2.0
    resubscribe_delay: float = 5.0
    resubscribe_max_delay: float = 60.0

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "SyncSettings":
        env = os.environ if env is None else env
        return cls(
            fallback_timeout=_parse(env, "TASK_SYNC_FALLBACK_TIMEOUT", 5.0, float),
            poll_interval=_parse(env, "TASK_SYNC_POLL_INTERVAL", 3.0, float),
            tick_interval=_parse(env, "TASK_SYNC_TICK_INTERVAL", 1.0, float),
            grace_period=_parse(env, "TASK_SYNC_GRACE_PERIOD", 2.0, float),
            resubscribe_delay=_parse(env, "TASK_SYNC_RESUBSCRIBE_DELAY", 5.0, float),
            resubscribe_max_delay=_parse(env, "TASK_SYNC_RESUBSCRIBE_MAX_DELAY", 60.0, float),
        )

    def task_sync_config(self) -> TaskSyncConfig:
        return TaskSyncConfig(
            fallback_timeout=self.fallback_timeout,
            poll_interval=self.poll_interval,
            tick_interval=self.tick_interval,
            grace_period=self.grace_period,
            resubscribe_delay=self.resubscribe_delay,
            resubscribe_max_delay=self.resubscribe_max_delay,
        )


@dataclass
class Settings:
    database_url: str | None = None
    agent: AgentSettings = field(default_factory=AgentSettings)
    sync: SyncSettings = field(default_factory=SyncSettings)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if env is None else env
        return cls(
            database_url=env.get("DATABASE_URL") or None,
            agent=AgentSettings.from_env(env),
            sync=SyncSettings.from_env(env),
        )

    def require(self, *keys: str) -> None:
        """Fail fast when required keys are unset.

        Raises:
            ConfigurationError: Listing every missing key
        """
        present = {
            "DATABASE_URL": self.database_url,
            "OPENROUTER_API_KEY": self.agent.api_key,
        }
        missing = [key for key in keys if not present.get(key)]
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)}",
                missing_keys=missing,
            )


def load_settings(
    env: Mapping[str, str] | None = None,
    required: tuple[str, ...] = (),
) -> Settings:
    """Read settings from the environment and check required keys."""
    settings = Settings.from_env(env)
    settings.require(*required)
    logger.debug(f"Loaded settings: {settings.agent!r}")
    return settings
