import json
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, List, Mapping, Sequence, Tuple

import httpx

from ..models import ToolCall, ToolName, ToolResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolSpec:
    """Declaration of one tool: description plus JSON-schema arguments."""

    name: ToolName
    description: str
    properties: Mapping[str, Dict[str, Any]] = field(default_factory=dict)
    required: Tuple[str, ...] = ()

    @property
    def parameters(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": dict(self.properties),
            "required": list(self.required),
        }

    def missing_args(self, args: Mapping[str, Any]) -> List[str]:
        return [a for a in self.required if args.get(a) is None]


TOOL_SPECS: Mapping[ToolName, ToolSpec] = {
    ToolName.LIST_GITHUB_REPOS: ToolSpec(
        name=ToolName.LIST_GITHUB_REPOS,
        description="List the user's most recently updated GitHub repositories.",
    ),
    ToolName.CREATE_GITHUB_ISSUE: ToolSpec(
        name=ToolName.CREATE_GITHUB_ISSUE,
        description="Create a new issue in a GitHub repository.",
        properties={
            "repo": {
                "type": "string",
                "description": "The full name of the repository (e.g., 'owner/repo').",
            },
            "title": {
                "type": "string",
                "description": "The title of the issue.",
            },
            "body": {
                "type": "string",
                "description": "The body content of the issue.",
            },
        },
        required=("repo", "title"),
    ),
    ToolName.SEND_GMAIL: ToolSpec(
        name=ToolName.SEND_GMAIL,
        description="Send an email using the user's connected Gmail account.",
        properties={
            "to": {
                "type": "string",
                "description": "The recipient's email address.",
            },
            "subject": {
                "type": "string",
                "description": "The subject of the email.",
            },
            "body": {
                "type": "string",
                "description": "The plain text body of the email.",
            },
        },
        required=("to", "subject", "body"),
    ),
}


def resolve_tool(name: str) -> ToolSpec | None:
    """Return the spec for a wire tool name, or None if the tool is unknown."""
    try:
        return TOOL_SPECS[ToolName(name)]
    except ValueError:
        return None


@lru_cache(maxsize=1)
def get_openai_tool_schemas() -> Tuple[Dict[str, Any], ...]:
    """Tool declarations in OpenAI function format (cached)."""
    return tuple(
        {
            "type": "function",
            "function": {
                "name": spec.name.value,
                "description": spec.description,
                "parameters": spec.parameters,
            },
        }
        for spec in TOOL_SPECS.values()
    )


@lru_cache(maxsize=1)
def get_function_declarations() -> Tuple[Dict[str, Any], ...]:
    """Tool declarations as plain name/description/parameters dicts (cached)."""
    return tuple(
        {
            "name": spec.name.value,
            "description": spec.description,
            "parameters": spec.parameters,
        }
        for spec in TOOL_SPECS.values()
    )


class ToolDispatcher:
    """Invokes tools against the Tool Executor HTTP endpoint.

    ``invoke`` never raises: every failure is folded into ``ToolResult.error``
    so that the model can be told about it and the turn can continue.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        executor_url: str,
        timeout: float = 60.0,
    ) -> None:
        self._http = http_client
        self._executor_url = executor_url
        self._timeout = timeout

    async def invoke(self, call: ToolCall) -> ToolResult:
        """Execute one tool call and return exactly one result for it.

        Args:
            call: ToolCall emitted by the model (id, name, args).

        Returns:
            ToolResult: Same id and name as ``call``, carrying either the
                executor's JSON body as ``content`` or an ``error`` message.
                Unknown tools, missing arguments, transport errors, non-2xx
                responses and malformed bodies all end up in ``error``.
        """
        spec = resolve_tool(call.name)
        if spec is None:
            logger.error("Model requested unknown tool: %s", call.name)
            return ToolResult(id=call.id, name=call.name, error=f"Unknown tool: {call.name}")

        missing = spec.missing_args(call.args)
        if missing:
            logger.warning("Tool %s called without %s", call.name, ", ".join(missing))
            return ToolResult(
                id=call.id,
                name=call.name,
                error=f"Missing required arguments: {', '.join(missing)}",
            )

        logger.info("Executing tool: %s", call.name)
        try:
            response = await self._http.post(
                self._executor_url,
                json={"tool": spec.name.value, "args": dict(call.args)},
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            logger.error("Tool %s request failed: %s", call.name, e)
            return ToolResult(id=call.id, name=call.name, error=str(e) or type(e).__name__)

        try:
            body = response.json()
        except (json.JSONDecodeError, ValueError) as e:
            logger.error("Tool %s returned a malformed body: %s", call.name, e)
            return ToolResult(
                id=call.id,
                name=call.name,
                error=f"Malformed response from tool executor (HTTP {response.status_code})",
            )

        if isinstance(body, dict) and "error" in body:
            logger.error("Tool %s failed: %s", call.name, body["error"])
            return ToolResult(
                id=call.id,
                name=call.name,
                error=str(body["error"] or "Tool execution failed"),
            )

        if response.is_error:
            logger.error("Tool %s failed with HTTP %s", call.name, response.status_code)
            return ToolResult(
                id=call.id,
                name=call.name,
                error=f"Tool executor returned HTTP {response.status_code}",
            )

        logger.info("Tool %s completed successfully", call.name)
        return ToolResult(id=call.id, name=call.name, content=body)

    async def invoke_all(self, calls: Sequence[ToolCall]) -> List[ToolResult]:
        """Invoke calls one at a time, in the order the model issued them."""
        results: List[ToolResult] = []
        for call in calls:
            results.append(await self.invoke(call))
        return results
