"""Application configuration using pydantic-settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Tangent configuration settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # API Keys
    anthropic_api_key: str = ""
    anthropic_base_url: str = "https://api.anthropic.com"

    # Models
    agent_model: str = "claude-sonnet-4-5"
    planner_model: str = "claude-3-5-haiku-latest"
    synthesis_model: str = "claude-3-5-haiku-latest"

    # LLM Settings
    max_tokens: int = 2048
    thinking_budget: int = 0  # 0 disables extended thinking
    request_timeout: float = 60.0

    # Orchestration
    max_concurrency: int = 3

    # Tools
    web_search_endpoint: str = "https://api.duckduckgo.com/"


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
