from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from nexus.main import app
from nexus.models import AgentResponse, Source
from nexus.services.connection_store import MemoryConnectionStore
from nexus.services.tool_executor import ToolExecutionError


@pytest.fixture
def client() -> TestClient:
    """TestClient with the lifespan-built services replaced by test doubles."""
    app.state.agent = MagicMock()
    app.state.executor = MagicMock()
    app.state.store = MemoryConnectionStore()
    return TestClient(app)


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_agent_turn(client: TestClient) -> None:
    """The turn endpoint returns text and sources."""
    app.state.agent.run_turn = AsyncMock(
        return_value=AgentResponse(text="Hi.", sources=[Source("https://x", "X")])
    )
    resp = client.post("/api/agent/turn", json={"query": "  hello "})
    assert resp.status_code == 200
    assert resp.json() == {"text": "Hi.", "sources": [{"uri": "https://x", "title": "X"}]}
    app.state.agent.run_turn.assert_awaited_once_with("hello")


def test_agent_turn_empty_query(client: TestClient) -> None:
    resp = client.post("/api/agent/turn", json={"query": "   "})
    assert resp.status_code == 400


def test_agent_turn_unclassified_failure(client: TestClient) -> None:
    """Errors propagated by the agent become a 502."""
    app.state.agent.run_turn = AsyncMock(side_effect=ValueError("weird"))
    resp = client.post("/api/agent/turn", json={"query": "hello"})
    assert resp.status_code == 502
    assert resp.json()["detail"] == "weird"


def test_execute_tool(client: TestClient) -> None:
    app.state.executor.execute = AsyncMock(return_value={"url": "u", "number": 1})
    resp = client.post(
        "/api/tools/execute",
        json={"tool": "create_github_issue", "args": {"repo": "o/r", "title": "t"}},
    )
    assert resp.status_code == 200
    assert resp.json() == {"url": "u", "number": 1}
    app.state.executor.execute.assert_awaited_once_with(
        "create_github_issue", {"repo": "o/r", "title": "t"}
    )


def test_execute_tool_error(client: TestClient) -> None:
    """Executor errors are returned as {error} with their status code."""
    app.state.executor.execute = AsyncMock(
        side_effect=ToolExecutionError("GitHub not connected", status_code=400)
    )
    resp = client.post("/api/tools/execute", json={"tool": "list_github_repos"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "GitHub not connected"}


def test_execute_tool_unexpected_error(client: TestClient) -> None:
    """Any other executor failure is a 500 with its message."""
    app.state.executor.execute = AsyncMock(side_effect=AttributeError("boom"))
    resp = client.post("/api/tools/execute", json={"tool": "list_github_repos"})
    assert resp.status_code == 500
    assert resp.json() == {"error": "boom"}


def test_connections_lifecycle(client: TestClient) -> None:
    """Store, list and disconnect a provider."""
    resp = client.put(
        "/api/connections/github", json={"access_token": "gho_1", "expires_in": 3600}
    )
    assert resp.json() == {"success": True, "id": "github"}

    listed = client.get("/api/connections").json()
    assert [c["provider"] for c in listed] == ["github"]
    assert "access_token" not in listed[0]

    assert client.post("/api/connections/github/disconnect").json() == {"success": True}
    assert client.get("/api/connections").json() == []
