"""
Pydantic models for ragent API requests and responses.
This module defines the request and response schemas used by the ragent API.
"""

from typing import (
    Any,
    Dict,
    List,
    Literal,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
    field_validator,
)

from ragent.core.schema import (
    AgentConfig,
    AgentMetrics,
    AgentResult,
    AssistantText,
    Citation,
    Message,
    UserText,
)


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class SessionResponse(BaseModel):
    """Response with session information."""

    session_id: str


class HistoryMessage(BaseModel):
    """One prior turn supplied by the caller."""

    role: Literal["user", "assistant"]
    content: str

    def to_message(self) -> Message:
        if self.role == "user":
            return UserText(content=self.content)
        return AssistantText(content=self.content)


class AgentConfigRequest(BaseModel):
    """Per-request overrides of the agent defaults."""

    max_tool_calls: int = Field(5, ge=1, le=10, description="Max tool-call batches (1-10)")
    allow_parallel_tool_calls: bool = True
    use_retrieval_context: bool = True
    top_k: int = Field(3, ge=1, le=20)
    min_relevance_score: float = Field(0.7, ge=0.0, le=1.0)
    system_prompt: Optional[str] = Field(None, max_length=1000)

    def to_agent_config(self, tool_timeout_ms: int | None = None) -> AgentConfig:
        return AgentConfig(**self.model_dump(), tool_timeout_ms=tool_timeout_ms)


class AgentChatRequest(BaseModel):
    """Incoming user message."""

    message: str = Field(..., min_length=1, max_length=2000, description="User message for the agent")
    session_id: Optional[str] = Field(None, description="Session ID for conversation context")
    conversation_history: List[HistoryMessage] = Field(default_factory=list, max_length=50)
    config: Optional[AgentConfigRequest] = None

    @field_validator("message")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("message must not be blank")
        return value


class ToolCallInfo(BaseModel):
    tool_name: str
    arguments: Dict[str, Any]
    reasoning: Optional[str] = None


class AgentChatResponse(BaseModel):
    """API response returned to the caller."""

    answer: str
    session_id: str
    tool_calls: List[ToolCallInfo] = Field(default_factory=list)
    citations: List[Citation] = Field(default_factory=list)
    retrieved_documents: List[str] = Field(default_factory=list)
    metrics: AgentMetrics
    exhausted: bool = False

    @classmethod
    def from_result(cls, result: AgentResult, session_id: str) -> "AgentChatResponse":
        return cls(
            answer=result.final_answer,
            session_id=session_id,
            tool_calls=[
                ToolCallInfo(tool_name=c.tool_name, arguments=c.arguments, reasoning=c.reasoning_trace)
                for c in result.tool_calls_executed
            ],
            citations=result.citations,
            retrieved_documents=result.retrieved_documents,
            metrics=result.metrics,
            exhausted=result.exhausted,
        )
