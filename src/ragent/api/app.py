"""
HTTP transport for ragent.

This module is a thin shell around :class:`~ragent.agent.agent_loop.AgentOrchestrator`.
It exposes the following endpoints:
- **GET /health**             - liveness probe for health checks.
- **POST /sessions**          - create a new session, returns a session ID.
- **GET /sessions**           - list all active sessions.
- **POST /agent/chat**        - run the agent: {"message": "...", "session_id": "...", "config": {...}}
                                (tenant taken from the ``X-Tenant-Id`` header)
- **GET /agent/tools**        - the tool catalog.
- **GET /agent/tools/{name}** - one tool definition.
"""

import logging
import uuid
from functools import lru_cache
from typing import (
    Dict,
    List,
    Optional,
)

from fastapi import (
    Depends,
    FastAPI,
    Header,
    HTTPException,
)
from fastapi.middleware.cors import CORSMiddleware

from ragent import __version__
from ragent.agent.agent_loop import AgentOrchestrator
from ragent.agent.planner_interface import (
    ReasoningCapabilityUnavailable,
    load_planner,
)
from ragent.agent.tool_executor import ToolExecutor
from ragent.api.models import (
    AgentChatRequest,
    AgentChatResponse,
    SessionResponse,
)
from ragent.config import settings
from ragent.core.schema import (
    AgentConfig,
    AssistantText,
    Message,
    ToolDefinition,
    UserText,
)
from ragent.tools import (
    ToolNotFoundError,
    ToolRegistry,
)

logger = logging.getLogger(__name__)

# Oldest turns are dropped past this many messages per session
MAX_SESSION_MESSAGES = 50

# Session storage (in-memory for now, could be moved to a database)
sessions: Dict[str, List[Message]] = {}

app = FastAPI(title="ragent API", version=__version__, description="Agent orchestration API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[f"http://localhost:{settings.API_PORT}"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
@lru_cache(maxsize=1)
def get_orchestrator() -> AgentOrchestrator:
    """Build the process-wide orchestrator on first use."""
    # pylint: disable=import-outside-toplevel
    from ragent.tools.builtin import build_default_registry

    registry = build_default_registry(settings)
    return AgentOrchestrator(
        planner=load_planner(),
        registry=registry,
        executor=ToolExecutor(registry, default_timeout_ms=settings.TOOL_TIMEOUT_MS),
        default_config=AgentConfig.from_settings(settings),
    )


def get_registry(orchestrator: AgentOrchestrator = Depends(get_orchestrator)) -> ToolRegistry:
    return orchestrator.registry


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------
def get_or_create_session(session_id: Optional[str] = None) -> str:
    """Get existing session or create a new one."""
    if session_id and session_id in sessions:
        return session_id

    new_session_id = str(uuid.uuid4())
    sessions[new_session_id] = []
    return new_session_id


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/health", summary="Health check")
async def health() -> dict[str, str]:
    """Return a simple liveness payload."""
    return {"status": "ok", "version": __version__}


@app.post("/sessions", response_model=SessionResponse, summary="Create a new session")
async def create_session() -> SessionResponse:
    """Create a new conversation session."""
    session_id = get_or_create_session()
    return SessionResponse(session_id=session_id)


@app.get("/sessions", response_model=List[str], summary="List active sessions")
async def list_sessions() -> List[str]:
    """List all active session IDs."""
    return list(sessions.keys())


@app.post("/agent/chat", response_model=AgentChatResponse, summary="Run the agent on a message")
async def agent_chat(
    req: AgentChatRequest,
    x_tenant_id: Optional[str] = Header(None),
    orchestrator: AgentOrchestrator = Depends(get_orchestrator),
) -> AgentChatResponse:
    """
    Answer one message.  An explicit ``conversation_history`` replaces the stored session history.
    """
    session_id = get_or_create_session(req.session_id)
    if req.conversation_history:
        history = [m.to_message() for m in req.conversation_history]
    else:
        history = sessions[session_id]
    config = req.config.to_agent_config(settings.TOOL_TIMEOUT_MS) if req.config else None

    try:
        result = await orchestrator.run(req.message, history, config, tenant_scope=x_tenant_id)
    except ReasoningCapabilityUnavailable as exc:
        logger.error("Agent run failed: %s", exc)
        raise HTTPException(status_code=502, detail=f"Reasoning capability unavailable: {exc}") from exc

    # Only the user/assistant turns are carried over to the next request
    turns = [m for m in result.messages if isinstance(m, (UserText, AssistantText))]
    sessions[session_id] = turns[-MAX_SESSION_MESSAGES:]

    logger.info(
        "Session %s: %d tool calls in %.0fms",
        session_id,
        result.metrics.tool_calls_count,
        result.metrics.total_duration_ms,
    )
    return AgentChatResponse.from_result(result, session_id)


@app.get("/agent/tools", response_model=List[ToolDefinition], summary="List available tools")
async def list_tools(registry: ToolRegistry = Depends(get_registry)) -> List[ToolDefinition]:
    return registry.list()


@app.get("/agent/tools/{name}", response_model=ToolDefinition, summary="Describe one tool")
async def get_tool(name: str, registry: ToolRegistry = Depends(get_registry)) -> ToolDefinition:
    try:
        return registry.get_definition(name)
    except ToolNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    host: str = "0.0.0.0", port: int = 8000, reload: bool = False, log_level: str | None = None
) -> None:
    """Start a uvicorn server hosting *app*.

    Parameters
    ----------
    host, port:
        Bind address for the HTTP server.
    reload:
        If *True*, enable auto-reload (useful in dev docker-compose).
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn an optional dependency at pkg-import time
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:  # Use the default from settings if not provided
        log_level = settings.LOG_LEVEL

    logger.info(
        "Starting ragent API at %s:%d (reload=%s, log_level=%s)", host, port, reload, log_level
    )
    secrets = {"ANTHROPIC_API_KEY", "OPENAI_API_KEY", "GITHUB_TOKEN"}
    logger.debug("API settings: %s", settings.model_dump(exclude=secrets))

    uvicorn.run(
        "ragent.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


# ---------------------------------------------------------------------------
# `python -m ragent.api.app` helper
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    run_api(reload=True)
