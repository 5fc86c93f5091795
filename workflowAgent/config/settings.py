"""Environment-bound configuration objects.

This module provides Pydantic BaseSettings-based configuration loading from .env files.
All settings classes automatically load from environment variables with support for
multiple alias names (e.g., AGENT_MODE and WORKFLOW_MODE both work).

The engine never reads these values from a global: a ``Settings`` instance is
created once by the entrypoint and handed to every task explicitly.

Example:
    from workflowAgent.config.settings import get_settings

    settings = get_settings()  # Cached, for entrypoints only
    max_react_num = settings.agent.max_react_num
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Literal, Optional

from dotenv import load_dotenv
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


load_dotenv()


class AgentSettings(BaseSettings):
    """Execution policy for planning and agent loops.

    Controls agent behavior limits and policies:
    - mode: fast | normal | expert (expert enables completion check, todo
      reconciliation and replanning)
    - max_react_num: Maximum loop iterations per agent node
    - compress_threshold / compress_tokens_threshold: Conversation length
      (messages / estimated tokens) that triggers context compression
    - agent_parallel / parallel_tool_calls: Concurrency policies
    """

    name: str = Field(default="WorkflowAgent", validation_alias=AliasChoices("AGENT_NAME"))
    mode: Literal["fast", "normal", "expert"] = Field(
        default="normal",
        validation_alias=AliasChoices("AGENT_MODE", "WORKFLOW_MODE"),
    )
    platform: Literal["windows", "mac", "linux"] = Field(
        default="linux",
        validation_alias=AliasChoices("AGENT_PLATFORM"),
    )

    max_react_num: int = Field(default=500, ge=1, validation_alias=AliasChoices("AGENT_MAX_REACT_NUM"))
    max_tokens: int = Field(default=16000, ge=1, validation_alias=AliasChoices("AGENT_MAX_TOKENS"))
    max_retry_num: int = Field(default=3, ge=0, validation_alias=AliasChoices("AGENT_MAX_RETRY_NUM"))
    retry_base_delay: float = Field(default=0.3, ge=0, validation_alias=AliasChoices("AGENT_RETRY_BASE_DELAY"))

    agent_parallel: bool = Field(default=False, validation_alias=AliasChoices("AGENT_PARALLEL"))
    parallel_tool_calls: bool = Field(default=True, validation_alias=AliasChoices("AGENT_PARALLEL_TOOL_CALLS"))

    compress_threshold: int = Field(default=80, ge=2, validation_alias=AliasChoices("AGENT_COMPRESS_THRESHOLD"))
    compress_tokens_threshold: int = Field(
        default=80000, ge=1, validation_alias=AliasChoices("AGENT_COMPRESS_TOKENS_THRESHOLD")
    )
    keep_recent_messages: int = Field(default=10, ge=1, validation_alias=AliasChoices("AGENT_KEEP_RECENT_MESSAGES"))
    large_text_length: int = Field(default=8000, ge=100, validation_alias=AliasChoices("AGENT_LARGE_TEXT_LENGTH"))
    max_dialogue_img_file_num: int = Field(default=1, ge=0, validation_alias=AliasChoices("AGENT_MAX_IMAGES"))
    tool_result_multimodal: bool = Field(default=True, validation_alias=AliasChoices("AGENT_TOOL_RESULT_MULTIMODAL"))

    expert_mode_todo_loop_num: int = Field(default=10, ge=1, validation_alias=AliasChoices("AGENT_TODO_LOOP_NUM"))
    max_consecutive_tool_errors: int = Field(default=10, ge=1, validation_alias=AliasChoices("AGENT_MAX_TOOL_ERRORS"))

    replan: bool = Field(default=False, validation_alias=AliasChoices("AGENT_REPLAN"))
    plan_max_retries: int = Field(default=3, ge=0, validation_alias=AliasChoices("AGENT_PLAN_MAX_RETRIES"))
    plan_retry_delay: float = Field(default=1.0, ge=0, validation_alias=AliasChoices("AGENT_PLAN_RETRY_DELAY"))

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def expert(self) -> bool:
        return self.mode == "expert"

    @property
    def replan_enabled(self) -> bool:
        return self.replan or self.expert


class ModelSettings(BaseSettings):
    """Vendor-neutral model identifiers and credentials.

    Two slots, each with id / api_key / base_url:
    - default: used by agent loops (MODEL_DEFAULT, MODEL_DEFAULT_ID, MODEL_ID)
    - plan: used by the planner and replanner (MODEL_PLAN, MODEL_PLAN_ID)

    ``fallbacks`` is a comma-separated list of model ids that share the
    default slot's credentials and are tried in order when it fails.
    """

    default: str = Field(
        default="gpt-4o",
        validation_alias=AliasChoices("MODEL_DEFAULT", "MODEL_DEFAULT_ID", "MODEL_ID"),
    )
    default_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_DEFAULT_API_KEY", "OPENAI_API_KEY"),
    )
    default_base_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_DEFAULT_BASE_URL", "OPENAI_BASE_URL"),
    )

    plan: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_PLAN", "MODEL_PLAN_ID"),
    )
    plan_api_key: Optional[str] = Field(default=None, validation_alias=AliasChoices("MODEL_PLAN_API_KEY"))
    plan_base_url: Optional[str] = Field(default=None, validation_alias=AliasChoices("MODEL_PLAN_BASE_URL"))

    fallbacks: str = Field(default="", validation_alias=AliasChoices("MODEL_FALLBACKS"))

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def fallback_ids(self) -> List[str]:
        return [item.strip() for item in self.fallbacks.split(",") if item.strip()]


class ObservabilitySettings(BaseSettings):
    """Logging configuration.

    - log_level: Level for the file handler (DEBUG/INFO/...)
    - log_dir: Directory for log files (empty disables the file handler)
    - log_prompt_max_length: Truncation length for logged prompts
    """

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_dir: str = Field(default="logs", alias="LOG_DIR")
    log_prompt_max_length: int = Field(default=500, ge=100, le=5000, alias="LOG_PROMPT_MAX_LENGTH")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


class Settings(BaseSettings):
    """Root application settings loaded from .env file.

    Hierarchical structure containing three nested settings groups:
    - agent: Execution policy (AgentSettings)
    - models: Model routing and API credentials (ModelSettings)
    - observability: Logging (ObservabilitySettings)
    """

    environment: str = Field(default="dev", alias="APP_ENV")
    agent: AgentSettings = Field(default_factory=AgentSettings)
    models: ModelSettings = Field(default_factory=ModelSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        validate_assignment=True,
        case_sensitive=False,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance for entrypoints.

    Core components never call this; they receive settings explicitly.
    """
    return Settings()
