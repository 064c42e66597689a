"""HTTP surface, with the orchestrator replaced through dependency overrides."""

import pytest
from fastapi.testclient import TestClient

from conftest import (
    ScriptedPlanner,
    batch,
)
from ragent.agent.agent_loop import AgentOrchestrator
from ragent.agent.planner_interface import ReasoningCapabilityUnavailable
from ragent.api import app as app_module
from ragent.core.schema import (
    AgentConfig,
    FinalAnswer,
    ToolDefinition,
    ToolParameter,
)
from ragent.tools import ToolRegistry


@pytest.fixture
def tenant_registry() -> ToolRegistry:
    reg = ToolRegistry()
    reg.register(
        ToolDefinition(
            name="whoami",
            description="Report the tenant",
            parameters=[ToolParameter(name="tenant_id", type="string")],
        ),
        lambda tenant_id=None: f"tenant={tenant_id}",
    )
    return reg


@pytest.fixture
def client_for(tenant_registry: ToolRegistry):
    """Build a TestClient whose orchestrator replays *steps*."""

    def _make(steps):
        orchestrator = AgentOrchestrator(
            ScriptedPlanner(steps), tenant_registry, default_config=AgentConfig(use_retrieval_context=False)
        )
        app_module.app.dependency_overrides[app_module.get_orchestrator] = lambda: orchestrator
        return TestClient(app_module.app), orchestrator

    yield _make
    app_module.app.dependency_overrides.clear()
    app_module.sessions.clear()


def test_health(client_for) -> None:
    """Liveness probe."""

    client, _ = client_for([])
    body = client.get("/health").json()
    assert body["status"] == "ok"


def test_sessions_roundtrip(client_for) -> None:
    """Created sessions are listed."""

    client, _ = client_for([])
    session_id = client.post("/sessions").json()["session_id"]
    assert session_id in client.get("/sessions").json()


def test_chat_uses_tenant_header(client_for) -> None:
    """The X-Tenant-Id header scopes tenant-aware tools."""

    client, _ = client_for([batch(("whoami", {})), FinalAnswer(text="you are acme")])
    resp = client.post("/agent/chat", json={"message": "who am I?"}, headers={"X-Tenant-Id": "acme"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["answer"] == "you are acme"
    assert body["tool_calls"] == [{"tool_name": "whoami", "arguments": {"tenant_id": "acme"}, "reasoning": None}]
    assert body["metrics"]["iteration_count"] == 1
    assert body["exhausted"] is False


def test_chat_keeps_session_history(client_for) -> None:
    """The second message of a session sees the first exchange."""

    client, orchestrator = client_for([FinalAnswer(text="one"), FinalAnswer(text="two")])
    session_id = client.post("/agent/chat", json={"message": "first"}).json()["session_id"]
    client.post("/agent/chat", json={"message": "second", "session_id": session_id})

    seen = orchestrator._planner.requests[1]["messages"]  # pylint: disable=protected-access
    assert [(m.kind, m.content) for m in seen] == [
        ("user_text", "first"),
        ("assistant_text", "one"),
        ("user_text", "second"),
    ]


@pytest.mark.parametrize(
    "payload",
    [
        {"message": ""},
        {"message": "   "},
        {"message": "x" * 2001},
        {"message": "ok", "config": {"max_tool_calls": 11}},
        {"message": "ok", "config": {"top_k": 0}},
        {"message": "ok", "config": {"min_relevance_score": 1.5}},
        {"message": "ok", "config": {"system_prompt": "p" * 1001}},
        {"message": "ok", "conversation_history": [{"role": "user", "content": "h"}] * 51},
    ],
)
def test_chat_validation(client_for, payload) -> None:
    """Out-of-range requests are rejected before the agent runs."""

    client, orchestrator = client_for([])
    assert client.post("/agent/chat", json=payload).status_code == 422
    assert orchestrator._planner.requests == []  # pylint: disable=protected-access


def test_chat_planner_failure_is_502(client_for) -> None:
    """A reasoning failure maps to Bad Gateway."""

    client, _ = client_for([ReasoningCapabilityUnavailable("model offline")])
    resp = client.post("/agent/chat", json={"message": "hi"})
    assert resp.status_code == 502
    assert "model offline" in resp.json()["detail"]


def test_tool_catalog(client_for) -> None:
    """Tools are listed and individually described; unknown names are 404."""

    client, _ = client_for([])
    tools = client.get("/agent/tools").json()
    assert [t["name"] for t in tools] == ["whoami"]
    assert client.get("/agent/tools/whoami").json()["description"] == "Report the tenant"
    assert client.get("/agent/tools/missing").status_code == 404
