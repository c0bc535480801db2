"""Agent package for the Nexus tool-using assistant.

This package exposes the turn orchestrator while keeping the pieces it is
built from (tool dispatch, retries, error classification, model sessions)
in separate modules.
"""

from .agent import NexusAgentService
from .config import AgentConfig
from .errors import classify, remediation
from .retry import RetryController
from .session import ConversationSession, create_session
from .tools import TOOL_SPECS, ToolDispatcher

__all__ = [
    "AgentConfig",
    "ConversationSession",
    "NexusAgentService",
    "RetryController",
    "TOOL_SPECS",
    "ToolDispatcher",
    "classify",
    "create_session",
    "remediation",
]
