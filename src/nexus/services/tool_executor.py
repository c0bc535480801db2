import base64
import logging
from email.message import EmailMessage
from typing import Any, Awaitable, Callable, Dict, List, Mapping

import httpx

from ..models import ToolName
from .connection_store import ConnectionStore

logger = logging.getLogger(__name__)

USER_AGENT = "Nexus-Agent"


class ToolExecutionError(Exception):
    """A tool could not be executed; ``status_code`` is what the API returns."""

    def __init__(self, message: str, status_code: int = 500) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def encode_gmail_message(to: str, subject: str, body: str) -> str:
    """RFC 2822 message encoded as unpadded base64url, as Gmail's ``raw`` expects."""
    message = EmailMessage()
    message["To"] = to
    message["Subject"] = subject
    message.set_content(body, charset="utf-8")
    return base64.urlsafe_b64encode(message.as_bytes()).decode("ascii").rstrip("=")


def _upstream_error(response: httpx.Response, default: str) -> str:
    try:
        data = response.json()
    except ValueError:
        return f"{default} (HTTP {response.status_code})"
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        return error.get("message") or default
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return str(error or default)


class ToolExecutor:
    """Runs GitHub and Gmail tools using tokens from the connection store."""

    def __init__(
        self,
        store: ConnectionStore,
        http_client: httpx.AsyncClient,
        github_api_url: str = "https://api.github.com",
        gmail_api_url: str = "https://gmail.googleapis.com/gmail/v1",
    ) -> None:
        self._store = store
        self._http = http_client
        self._github = github_api_url.rstrip("/")
        self._gmail = gmail_api_url.rstrip("/")
        self._handlers: Dict[ToolName, Callable[[Dict[str, Any]], Awaitable[Any]]] = {
            ToolName.LIST_GITHUB_REPOS: lambda args: self.list_github_repos(),
            ToolName.CREATE_GITHUB_ISSUE: lambda args: self.create_github_issue(
                repo=args["repo"], title=args["title"], body=args.get("body") or ""
            ),
            ToolName.SEND_GMAIL: lambda args: self.send_gmail(
                to=args["to"], subject=args["subject"], body=args["body"]
            ),
        }

    async def _token(self, provider: str, label: str) -> str:
        token = await self._store.get_token(provider)
        if not token:
            raise ToolExecutionError(f"{label} not connected", status_code=400)
        return token

    def _github_headers(self, token: str) -> Dict[str, str]:
        return {
            "Authorization": f"token {token}",
            "User-Agent": USER_AGENT,
            "Accept": "application/vnd.github+json",
        }

    async def list_github_repos(self) -> List[Dict[str, Any]]:
        token = await self._token("github", "GitHub")
        response = await self._http.get(
            f"{self._github}/user/repos",
            params={"sort": "updated", "per_page": 5},
            headers=self._github_headers(token),
        )
        if response.is_error:
            raise ToolExecutionError(
                _upstream_error(response, "Failed to list repositories"), status_code=502
            )
        return [
            {"name": r.get("name"), "url": r.get("html_url"), "description": r.get("description")}
            for r in response.json()
        ]

    async def create_github_issue(self, repo: str, title: str, body: str = "") -> Dict[str, Any]:
        token = await self._token("github", "GitHub")
        response = await self._http.post(
            f"{self._github}/repos/{repo}/issues",
            json={"title": title, "body": body},
            headers=self._github_headers(token),
        )
        if response.is_error:
            raise ToolExecutionError(
                _upstream_error(response, "Failed to create issue"), status_code=502
            )
        issue = response.json()
        return {"url": issue.get("html_url"), "number": issue.get("number")}

    async def send_gmail(self, to: str, subject: str, body: str) -> Dict[str, Any]:
        token = await self._token("google", "Google")
        response = await self._http.post(
            f"{self._gmail}/users/me/messages/send",
            json={"raw": encode_gmail_message(to, subject, body)},
            headers={"Authorization": f"Bearer {token}"},
        )
        if response.is_error:
            raise ToolExecutionError(
                _upstream_error(response, "Failed to send email"), status_code=502
            )
        return {"success": True, "id": response.json().get("id")}

    async def execute(self, tool: str, args: Mapping[str, Any] | None = None) -> Any:
        """Run ``tool`` with ``args``; raises ToolExecutionError on any failure."""
        args = dict(args or {})
        try:
            name = ToolName(tool)
        except ValueError:
            raise ToolExecutionError("Tool not found", status_code=404) from None

        logger.info("Executing %s", name.value)
        try:
            return await self._handlers[name](args)
        except KeyError as e:
            raise ToolExecutionError(f"Missing argument: {e.args[0]}", status_code=400) from e
        except httpx.HTTPError as e:
            logger.error("Upstream request for %s failed: %s", name.value, e)
            raise ToolExecutionError(str(e) or type(e).__name__, status_code=502) from e
        except ValueError as e:
            logger.error("Malformed upstream response for %s: %s", name.value, e)
            raise ToolExecutionError("Malformed response from upstream", status_code=502) from e
