import asyncio
import logging
from typing import Callable

from ..models import AgentResponse, ErrorClassification, ModelResponse
from .config import AgentConfig
from .errors import remediation
from .retry import RetryController, Sleep
from .session import ConversationSession, create_session
from .tools import ToolDispatcher

logger = logging.getLogger(__name__)


DEFAULT_TEXT = "Task completed."

SessionFactory = Callable[[AgentConfig], ConversationSession]


class NexusAgentService:
    """Drives one conversational turn: model calls, tool round-trips, retries."""

    def __init__(
        self,
        config: AgentConfig,
        dispatcher: ToolDispatcher,
        session_factory: SessionFactory = create_session,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.config = config
        self.dispatcher = dispatcher
        self._session_factory = session_factory
        self._sleep = sleep

    async def _attempt(self, query: str) -> AgentResponse:
        """One full model⇄tool exchange for ``query`` on a fresh session.

        A failed send leaves a chat with an unanswered function call, so every
        attempt starts from a new session.
        """
        session = self._session_factory(self.config)
        response = await session.send_message(query)

        iterations = 0
        while response.tool_calls and iterations < self.config.max_tool_iterations:
            iterations += 1
            logger.info(
                "Tool iteration %d: %s",
                iterations,
                ", ".join(call.name for call in response.tool_calls),
            )
            results = await self.dispatcher.invoke_all(response.tool_calls)
            response = await session.send_tool_results(results)

        if response.tool_calls:
            logger.warning(
                "Stopped after %d tool iterations with %d call(s) still pending",
                iterations,
                len(response.tool_calls),
            )

        return self._to_agent_response(response)

    @staticmethod
    def _to_agent_response(response: ModelResponse) -> AgentResponse:
        return AgentResponse(
            text=response.text or DEFAULT_TEXT,
            sources=list(response.sources),
        )

    async def run_turn(self, query: str) -> AgentResponse:
        """Answer ``query`` through model calls and tool round-trips.

        Args:
            query: User request text (str).

        Returns:
            AgentResponse: Final text and web sources, or a fixed remediation
                response when the model key is missing or a classified
                failure ends the turn.

        Raises:
            Exception: Unclassified model errors are propagated unchanged.
        """
        if not self.config.api_key:
            logger.warning("No model API key configured; skipping model call")
            return remediation(ErrorClassification.MISSING_KEY)

        logger.debug("User query: %s", query[:200])

        controller = RetryController(
            max_attempts=self.config.max_attempts,
            backoff_base=self.config.backoff_base,
            sleep=self._sleep,
        )
        outcome = await controller.run(lambda: self._attempt(query))

        if outcome.succeeded:
            logger.info("Turn completed after %d attempt(s)", outcome.attempts)
            return outcome.value

        logger.error(
            "Turn failed after %d attempt(s) (%s): %s",
            outcome.attempts,
            outcome.classification.value,
            outcome.error,
        )
        response = remediation(outcome.classification)
        if response is None:
            raise outcome.error
        return response
