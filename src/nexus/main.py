import logging
import time
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .agent import AgentConfig, NexusAgentService, ToolDispatcher
from .models import Connection
from .services.connection_store import open_connection_store
from .services.tool_executor import ToolExecutionError, ToolExecutor
from .settings import get_settings


def setup_server_logging(level: str = "INFO") -> logging.Logger:
    """Configure and return the server logger."""
    logs_dir = Path("logs")
    logs_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger("nexus")
    if logger.handlers:
        return logging.getLogger("nexus.server")

    logger.setLevel(level)
    fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s - %(message)s")

    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    fh = RotatingFileHandler(logs_dir / "server.log", maxBytes=5_000_000, backupCount=3)
    fh.setFormatter(fmt)
    logger.addHandler(fh)

    return logging.getLogger("nexus.server")


def _cors_origins_list(origins: str) -> list[str]:
    """Parse CORS_ORIGINS into a list."""
    if not origins or origins.strip() == "*":
        return ["*"]
    return [o.strip() for o in origins.split(",") if o.strip()]


settings = get_settings()
LOGGER = setup_server_logging(settings.log_level)


class TurnRequest(BaseModel):
    query: str


class ToolRequest(BaseModel):
    tool: str
    args: Dict[str, Any] = Field(default_factory=dict)


class ConnectionRequest(BaseModel):
    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the shared HTTP client, connection store and agent; close them on shutdown."""
    http_client = httpx.AsyncClient(timeout=settings.tool_request_timeout_seconds)
    store = await open_connection_store()

    app.state.store = store
    app.state.executor = ToolExecutor(
        store,
        http_client,
        github_api_url=settings.github_api_url,
        gmail_api_url=settings.gmail_api_url,
    )
    app.state.agent = NexusAgentService(
        AgentConfig.from_settings(settings),
        ToolDispatcher(
            http_client,
            settings.tool_executor_url,
            timeout=settings.tool_request_timeout_seconds,
        ),
    )
    LOGGER.info("Nexus agent ready (provider=%s, model=%s)", settings.model_provider, settings.model)

    yield

    LOGGER.info("Shutting down...")
    await http_client.aclose()
    await store.close()


app = FastAPI(
    title="Nexus Agent",
    version="0.1.0",
    debug=settings.debug,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins_list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/api/health")
@app.get("/health")
async def health() -> dict[str, Any]:
    """Health check for load balancers and monitoring."""
    return {"status": "ok"}


@app.post("/api/agent/turn")
async def agent_turn(payload: TurnRequest, request: Request) -> dict[str, Any]:
    """Run one agent turn for ``query`` and return ``{text, sources}``."""
    query = payload.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Empty query")

    LOGGER.info("Agent turn start")
    try:
        response = await request.app.state.agent.run_turn(query)
    except Exception as e:
        LOGGER.exception("Agent turn failed: %s", e)
        raise HTTPException(status_code=502, detail=str(e)) from e
    return response.to_dict()


@app.post("/api/tools/execute")
async def execute_tool(payload: ToolRequest, request: Request) -> Any:
    """Tool Executor endpoint: ``{tool, args}`` in, tool result or ``{error}`` out."""
    try:
        return await request.app.state.executor.execute(payload.tool, payload.args)
    except ToolExecutionError as e:
        LOGGER.error("Tool execution error (%s): %s", payload.tool, e.message)
        return JSONResponse(status_code=e.status_code, content={"error": e.message})
    except Exception as e:
        LOGGER.exception("Unexpected tool execution error (%s): %s", payload.tool, e)
        return JSONResponse(status_code=500, content={"error": str(e)})


@app.get("/api/connections")
async def list_connections(request: Request) -> list[dict[str, Any]]:
    """List stored connections without their tokens."""
    return await request.app.state.store.list()


@app.put("/api/connections/{provider}")
async def save_connection(provider: str, payload: ConnectionRequest, request: Request) -> dict[str, Any]:
    """Store tokens for ``provider`` obtained from its OAuth flow."""
    expires_at = None
    if payload.expires_in is not None:
        expires_at = int(time.time() * 1000) + payload.expires_in * 1000

    connection = Connection(
        provider=provider,
        access_token=payload.access_token,
        refresh_token=payload.refresh_token,
        expires_at=expires_at,
    )
    if not await request.app.state.store.save(connection):
        raise HTTPException(status_code=503, detail="Connection store unavailable")
    LOGGER.info("Stored connection for %s", provider)
    return {"success": True, "id": connection.id}


@app.post("/api/connections/{provider}/disconnect")
async def disconnect(provider: str, request: Request) -> dict[str, Any]:
    """Forget the stored tokens for ``provider``."""
    await request.app.state.store.delete(provider)
    LOGGER.info("Disconnected %s", provider)
    return {"success": True}
