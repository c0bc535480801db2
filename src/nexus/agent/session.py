"""Conversation sessions against the model service.

Each adapter turns a provider reply into a ``ModelResponse`` so that the
orchestrator never touches SDK types. A session belongs to a single turn.
"""

import json
import logging
from typing import Any, Dict, List, Protocol, Sequence

from google import genai
from google.genai import types
from openai import AsyncOpenAI

from ..models import ModelResponse, Source, ToolCall, ToolResult
from .config import AgentConfig
from .tools import get_function_declarations, get_openai_tool_schemas

logger = logging.getLogger(__name__)


class ConversationSession(Protocol):
    async def send_message(self, text: str) -> ModelResponse: ...

    async def send_tool_results(self, results: Sequence[ToolResult]) -> ModelResponse: ...


def _gemini_tools(web_search: bool) -> List[types.Tool]:
    tools: List[types.Tool] = []
    if web_search:
        tools.append(types.Tool(google_search=types.GoogleSearch()))
    tools.append(
        types.Tool(
            function_declarations=[
                types.FunctionDeclaration(
                    name=decl["name"],
                    description=decl["description"],
                    parameters_json_schema=decl["parameters"],
                )
                for decl in get_function_declarations()
            ]
        )
    )
    return tools


def _gemini_sources(response: types.GenerateContentResponse) -> List[Source]:
    if not response.candidates:
        return []
    meta = getattr(response.candidates[0], "grounding_metadata", None)
    chunks = getattr(meta, "grounding_chunks", None) or []
    sources: List[Source] = []
    for chunk in chunks:
        web = getattr(chunk, "web", None)
        if web is None:
            continue
        sources.append(Source(uri=web.uri or "", title=web.title or ""))
    return sources


def parse_gemini_response(response: types.GenerateContentResponse) -> ModelResponse:
    """Normalize a google-genai reply."""
    tool_calls = [
        ToolCall(
            # Gemini does not always assign ids; fall back to position.
            id=fc.id or f"call_{index}",
            name=fc.name or "",
            args=dict(fc.args or {}),
        )
        for index, fc in enumerate(response.function_calls or [])
    ]
    return ModelResponse(
        text=response.text,
        tool_calls=tool_calls,
        sources=_gemini_sources(response),
    )


class GeminiConversationSession:
    """Chat session on google-genai with web search and function calling."""

    def __init__(
        self,
        client: genai.Client,
        model: str,
        system_instruction: str,
        web_search: bool = True,
    ) -> None:
        self._chat = client.aio.chats.create(
            model=model,
            config=types.GenerateContentConfig(
                system_instruction=system_instruction,
                tools=_gemini_tools(web_search),
            ),
        )

    async def send_message(self, text: str) -> ModelResponse:
        logger.debug("[Gemini] Sending message to model...")
        response = await self._chat.send_message(text)
        return parse_gemini_response(response)

    async def send_tool_results(self, results: Sequence[ToolResult]) -> ModelResponse:
        parts = [
            types.Part(
                function_response=types.FunctionResponse(
                    id=result.id,
                    name=result.name,
                    response=result.to_response(),
                )
            )
            for result in results
        ]
        logger.debug("[Gemini] Sending %d tool result(s) back to model...", len(parts))
        response = await self._chat.send_message(parts)
        return parse_gemini_response(response)


def parse_openai_message(message: Any) -> ModelResponse:
    """Normalize an OpenAI chat completion message."""
    tool_calls: List[ToolCall] = []
    for tc in message.tool_calls or []:
        if tc.type != "function" or not tc.function:
            continue
        try:
            args = json.loads(tc.function.arguments) if tc.function.arguments else {}
        except json.JSONDecodeError as e:
            logger.error("Invalid tool arguments for %s: %s", tc.function.name, e)
            args = {}
        tool_calls.append(ToolCall(id=tc.id, name=tc.function.name, args=args))

    sources = [
        Source(uri=a.url_citation.url, title=a.url_citation.title)
        for a in (getattr(message, "annotations", None) or [])
        if a.type == "url_citation" and a.url_citation
    ]
    return ModelResponse(text=message.content, tool_calls=tool_calls, sources=sources)


class OpenAIConversationSession:
    """Chat-completions session that keeps its own message history."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str,
        system_instruction: str,
        web_search: bool = False,
    ) -> None:
        self._client = client
        self._model = model
        self._web_search = web_search
        self._messages: List[Dict[str, Any]] = [
            {"role": "system", "content": system_instruction}
        ]

    async def _complete(self) -> ModelResponse:
        kwargs: Dict[str, Any] = {
            "model": self._model,
            "messages": self._messages,
            "tools": list(get_openai_tool_schemas()),
            "tool_choice": "auto",
        }
        if self._web_search:
            kwargs["web_search_options"] = {}

        completion = await self._client.chat.completions.create(**kwargs)
        message = completion.choices[0].message

        entry: Dict[str, Any] = {"role": "assistant", "content": message.content}
        if message.tool_calls:
            entry["tool_calls"] = [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {
                        "name": tc.function.name,
                        "arguments": tc.function.arguments,
                    },
                }
                for tc in message.tool_calls
            ]
        self._messages.append(entry)
        return parse_openai_message(message)

    async def send_message(self, text: str) -> ModelResponse:
        self._messages.append({"role": "user", "content": text})
        return await self._complete()

    async def send_tool_results(self, results: Sequence[ToolResult]) -> ModelResponse:
        for result in results:
            self._messages.append(
                {
                    "role": "tool",
                    "tool_call_id": result.id,
                    "content": json.dumps(result.to_response(), default=str),
                }
            )
        return await self._complete()


def create_session(config: AgentConfig) -> ConversationSession:
    """Build a fresh session for one turn using the configured provider."""
    if config.provider == "openai":
        client = AsyncOpenAI(api_key=config.api_key, base_url=config.base_url)
        return OpenAIConversationSession(
            client,
            model=config.model,
            system_instruction=config.system_instruction,
            web_search=config.web_search,
        )
    return GeminiConversationSession(
        genai.Client(api_key=config.api_key),
        model=config.model,
        system_instruction=config.system_instruction,
        web_search=config.web_search,
    )
