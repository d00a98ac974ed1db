"""Configuration models for the tutor service."""

from typing import Literal, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServiceConfig(BaseSettings):
    """Service configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",  # Ignore extra environment variables
        populate_by_name=True,  # Allow both field names and validation aliases
    )

    environment: Literal["development", "production"] = Field(
        default="development",
        description="The environment the service is running in",
        validation_alias="ENVIRONMENT",
    )

    # OpenAI configuration
    openai_api_key: str = Field(
        default="",
        description="OpenAI API key",
        validation_alias="OPENAI_API_KEY",
    )
    openai_base_url: Optional[str] = Field(
        default=None,
        description="Base URL of an OpenAI compatible endpoint",
        validation_alias="OPENAI_BASE_URL",
    )

    # Storage
    database_path: str = Field(
        default="book_tutor.db",
        description="SQLite database holding conversations and agent settings",
        validation_alias="DATABASE_PATH",
    )

    # Agent defaults, used when the repository holds no agent settings
    ai_model: str = Field(default="gpt-4o-mini", validation_alias="AI_MODEL")
    token_budget: int = Field(default=32000, gt=0, validation_alias="TOKEN_BUDGET")
    auto_save: Optional[int] = Field(default=None, gt=0, validation_alias="AUTO_SAVE")
    max_tool_rounds: int = Field(default=8, gt=0, validation_alias="MAX_TOOL_ROUNDS")

    event_channel_size: int = Field(
        default=64,
        gt=0,
        description="Number of events buffered between the orchestrator and a slow consumer",
        validation_alias="EVENT_CHANNEL_SIZE",
    )
    max_sessions: int = Field(
        default=1000,
        gt=0,
        description="Conversations kept in memory; the least recently used idle one is flushed and dropped",
        validation_alias="MAX_SESSIONS",
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return not self.is_production

    def default_agent_settings(self) -> "AgentSettings":
        return AgentSettings(
            ai_model=self.ai_model,
            token_budget=self.token_budget,
            auto_save=self.auto_save,
            max_tool_rounds=self.max_tool_rounds,
        )


class AgentSettings(BaseModel):
    """Per-deployment tutor agent settings.

    Attributes:
        ai_model: Model identifier sent with every completion request.
        token_budget: Maximum estimated size of the retained history.
        auto_save: Unflushed message count that triggers a flush; None flushes every append.
        max_tool_rounds: Tool rounds allowed per user input before the loop is stopped.
    """

    ai_model: str
    token_budget: int = Field(gt=0)
    auto_save: Optional[int] = Field(default=None, gt=0)
    max_tool_rounds: int = Field(default=8, gt=0)
