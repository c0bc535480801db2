from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration."""

    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    model_provider: Literal["gemini", "openai"] = "gemini"
    model: str = "gemini-3-flash-preview"
    # API_KEY is the user-selected key and wins over the provider-specific ones
    api_key: str | None = None
    gemini_api_key: str | None = None
    openai_api_key: str | None = None
    openai_base_url: str | None = "https://api.openai.com/v1"
    web_search: bool = True
    # chat-completions web search only works with the *-search-preview models
    openai_web_search: bool = False

    max_tool_iterations: int = 5
    max_attempts: int = 3
    backoff_base_seconds: float = 2.0

    agent_system_prompt: str = (
        "You are Nexus, an advanced AI Computer Mode agent.\n"
        "You can search the web and interact with connected apps like GitHub "
        "and Gmail.\n"
        "When a user asks to perform an action on GitHub or Gmail, use the "
        "provided tools.\n"
        "If a tool requires more information (like which repo to use), ask the "
        "user or search for it.\n"
        "Always provide a clear summary of what you've done."
    )

    tool_executor_url: str = "http://localhost:8000/api/tools/execute"
    tool_request_timeout_seconds: float = 60.0
    github_api_url: str = "https://api.github.com"
    gmail_api_url: str = "https://gmail.googleapis.com/gmail/v1"

    redis_url: str | None = None

    cors_origins: str = "*"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",
        extra="ignore",
        protected_namespaces=(),
    )

    @property
    def model_api_key(self) -> str | None:
        """Key for the configured model provider, or None when nothing is set."""
        if self.api_key:
            return self.api_key
        if self.model_provider == "openai":
            return self.openai_api_key
        return self.gemini_api_key


def get_settings() -> Settings:
    """Return the application settings singleton (loaded from env / .env)."""
    global _SETTINGS
    try:
        return _SETTINGS
    except NameError:
        _SETTINGS = Settings()
        return _SETTINGS
