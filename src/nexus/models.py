from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List


class ToolName(str, Enum):
    """Tools the model may call. Values are the wire names."""

    LIST_GITHUB_REPOS = "list_github_repos"
    CREATE_GITHUB_ISSUE = "create_github_issue"
    SEND_GMAIL = "send_gmail"


class ErrorClassification(str, Enum):
    MISSING_KEY = "MissingKey"
    QUOTA_EXHAUSTED = "QuotaExhausted"
    INVALID_KEY = "InvalidKey"
    INTERNAL_ERROR = "InternalError"
    TRANSIENT = "Transient"
    UNCLASSIFIED = "Unclassified"


@dataclass(frozen=True)
class ToolCall:
    """A function call requested by the model."""

    id: str
    name: str
    args: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResult:
    """Outcome of one ToolCall. Exactly one of content / error is meaningful."""

    id: str
    name: str
    content: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_response(self) -> Dict[str, Any]:
        """Payload handed back to the model for this call."""
        if self.error is not None:
            return {"error": self.error}
        return {"content": self.content}


@dataclass(frozen=True)
class Source:
    uri: str
    title: str


@dataclass
class AgentResponse:
    """Result of one turn: final text plus the web sources it was grounded on."""

    text: str
    sources: List[Source] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "sources": [{"uri": s.uri, "title": s.title} for s in self.sources],
        }


@dataclass
class ModelResponse:
    """Provider-neutral view of one model reply."""

    text: str | None = None
    tool_calls: List[ToolCall] = field(default_factory=list)
    sources: List[Source] = field(default_factory=list)


@dataclass
class RetryState:
    attempt: int = 0
    max_attempts: int = 3

    @property
    def can_retry(self) -> bool:
        return self.attempt < self.max_attempts - 1


@dataclass
class Connection:
    """Stored OAuth tokens for one provider (github, google, notion)."""

    provider: str
    access_token: str
    refresh_token: str | None = None
    expires_at: int | None = None
    created_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    @property
    def id(self) -> str:
        return self.provider
