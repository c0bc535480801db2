from dataclasses import dataclass
from typing import Literal

from ..settings import Settings


@dataclass(frozen=True)
class AgentConfig:
    """Everything the turn orchestrator needs, resolved once at the boundary."""

    api_key: str | None
    system_instruction: str
    provider: Literal["gemini", "openai"] = "gemini"
    model: str = "gemini-3-flash-preview"
    base_url: str | None = None
    web_search: bool = True
    max_tool_iterations: int = 5
    max_attempts: int = 3
    backoff_base: float = 2.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "AgentConfig":
        return cls(
            api_key=settings.model_api_key,
            system_instruction=settings.agent_system_prompt,
            provider=settings.model_provider,
            model=settings.model,
            base_url=settings.openai_base_url if settings.model_provider == "openai" else None,
            web_search=(
                settings.openai_web_search
                if settings.model_provider == "openai"
                else settings.web_search
            ),
            max_tool_iterations=settings.max_tool_iterations,
            max_attempts=settings.max_attempts,
            backoff_base=settings.backoff_base_seconds,
        )
