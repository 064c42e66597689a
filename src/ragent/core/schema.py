"""
Schema definitions for planner <-> orchestrator <-> tool messages.

These data models serve as the contract between the reasoning capability, the orchestration loop,
and individual tools.  We keep them separate from runtime logic so they can be imported anywhere
without side-effects.
"""

import json
import uuid
from enum import Enum
from typing import (
    Annotated,
    Any,
    Dict,
    List,
    Literal,
    Optional,
    Tuple,
    Union,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)

from ragent.config import Settings

ParameterType = Literal["string", "number", "integer", "boolean", "array", "object", "any"]


# ---------------------------------------------------------------------------
# Tool catalog
# ---------------------------------------------------------------------------
class ToolCategory(str, Enum):
    """Coarse grouping of tools, used for discovery only."""

    RAG = "rag"
    GITHUB = "github"
    MEMORY = "memory"
    CODE_ANALYSIS = "code_analysis"
    WEB_SEARCH = "web_search"
    CUSTOM = "custom"


class ToolParameter(BaseModel):
    """One named argument a tool accepts."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    type: ParameterType = "string"
    required: bool = False
    default: Any = None
    description: str = ""
    choices: Optional[List[str]] = None


class ToolDefinition(BaseModel):
    """Name, description and parameter schema of a registered tool."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Unique, stable tool identifier")
    description: str = ""
    parameters: List[ToolParameter] = Field(default_factory=list)
    category: ToolCategory = ToolCategory.CUSTOM
    tags: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_parameter_names(self) -> "ToolDefinition":
        names = [p.name for p in self.parameters]
        if len(names) != len(set(names)):
            raise ValueError(f"Tool '{self.name}' declares a parameter more than once")
        return self

    def parameter(self, name: str) -> Optional[ToolParameter]:
        """Return the parameter called *name*, if declared."""
        for param in self.parameters:
            if param.name == name:
                return param
        return None


# ---------------------------------------------------------------------------
# Tool calls and their outcomes
# ---------------------------------------------------------------------------
class ToolCallRequest(BaseModel):
    """A call that the reasoning capability wants the orchestrator to execute."""

    model_config = ConfigDict(frozen=True)

    call_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    tool_name: str = Field(..., description="Registered tool name")
    arguments: Dict[str, Any] = Field(default_factory=dict, description="Arguments for the tool")
    reasoning_trace: Optional[str] = Field(
        None, description="Rationale emitted alongside the call; never executed"
    )

    def with_arguments(self, arguments: Dict[str, Any]) -> "ToolCallRequest":
        """Copy of this request (same ``call_id``) carrying *arguments* instead."""
        return self.model_copy(update={"arguments": dict(arguments)})

    def fingerprint(self) -> str:
        """Stable key for the tool name + arguments pair."""
        args = json.dumps(self.arguments, sort_keys=True, default=str, separators=(",", ":"))
        return f"{self.tool_name}:{args}"


class ToolErrorKind(str, Enum):
    """Recoverable tool-level fault categories."""

    NOT_FOUND = "tool_not_found"
    ARGUMENT_INVALID = "tool_argument_invalid"
    TIMEOUT = "tool_timeout"
    EXECUTION_FAILED = "tool_execution_failed"


class ToolOutcome(BaseModel):
    """
    Normalised result of a single tool call.

    Exactly one of "success with content" or "failure with error" holds.
    """

    model_config = ConfigDict(frozen=True)

    success: bool
    content: Optional[str] = None
    structured_data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_kind: Optional[ToolErrorKind] = None

    @model_validator(mode="after")
    def _success_xor_error(self) -> "ToolOutcome":
        if self.success and self.content is None:
            raise ValueError("a successful outcome needs content")
        if not self.success and not self.error:
            raise ValueError("a failed outcome needs an error message")
        return self

    @classmethod
    def ok(cls, content: str, structured_data: Optional[Dict[str, Any]] = None) -> "ToolOutcome":
        return cls(success=True, content=content, structured_data=structured_data)

    @classmethod
    def fail(cls, error: str, kind: ToolErrorKind = ToolErrorKind.EXECUTION_FAILED) -> "ToolOutcome":
        return cls(success=False, error=error, error_kind=kind)

    def as_text(self) -> str:
        """Text to re-insert into the conversation."""
        if self.success:
            return self.content or ""
        return f"Error: {self.error}"


# ---------------------------------------------------------------------------
# Conversation messages (tagged union)
# ---------------------------------------------------------------------------
class UserText(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["user_text"] = "user_text"
    content: str


class AssistantText(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["assistant_text"] = "assistant_text"
    content: str


class ToolCallIssued(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["tool_call_issued"] = "tool_call_issued"
    request: ToolCallRequest


class ToolResultReceived(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["tool_result_received"] = "tool_result_received"
    request: ToolCallRequest
    outcome: ToolOutcome


Message = Annotated[
    Union[UserText, AssistantText, ToolCallIssued, ToolResultReceived],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Reasoning capability decisions
# ---------------------------------------------------------------------------
class TokenUsage(BaseModel):
    """Token accounting reported by the reasoning capability for one call."""

    model: str = ""
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class FinalAnswer(BaseModel):
    """The reasoning capability answered the user."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["final_answer"] = "final_answer"
    text: str
    usage: Optional[TokenUsage] = None


class ToolCallBatch(BaseModel):
    """The reasoning capability wants one or more tools to run before it answers."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["tool_calls"] = "tool_calls"
    calls: List[ToolCallRequest] = Field(..., min_length=1)
    reasoning: Optional[str] = None
    usage: Optional[TokenUsage] = None


Decision = Annotated[Union[FinalAnswer, ToolCallBatch], Field(discriminator="kind")]


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------
class RankedPassage(BaseModel):
    """One scored chunk returned by a retrieval capability."""

    document_id: str
    chunk_index: Optional[int] = None
    score: float
    text: str = ""


class Citation(BaseModel):
    """A scored reference to a specific document chunk."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    chunk_index: Optional[int] = None
    score: float = 0.0
    text: Optional[str] = None

    @property
    def key(self) -> Tuple[str, Optional[int]]:
        """Fingerprint used for deduplication."""
        return (self.document_id, self.chunk_index)


# ---------------------------------------------------------------------------
# Orchestration input / output
# ---------------------------------------------------------------------------
class AgentConfig(BaseModel):
    """Per-request orchestration settings.  Never mutated by the orchestrator."""

    model_config = ConfigDict(frozen=True)

    max_tool_calls: int = Field(5, ge=1, description="Hard ceiling on tool-call batches")
    allow_parallel_tool_calls: bool = True
    use_retrieval_context: bool = True
    top_k: int = Field(3, ge=1)
    min_relevance_score: float = Field(0.7, ge=0.0, le=1.0)
    system_prompt: Optional[str] = None
    tool_timeout_ms: Optional[int] = Field(None, gt=0)
    retrieval_tool: str = "rag_search"

    @classmethod
    def from_settings(cls, cfg: Settings) -> "AgentConfig":
        """Build the default config from application settings."""
        return cls(
            max_tool_calls=cfg.AGENT_MAX_TOOL_CALLS,
            allow_parallel_tool_calls=cfg.AGENT_ALLOW_PARALLEL,
            use_retrieval_context=cfg.AGENT_USE_RETRIEVAL_CONTEXT,
            top_k=cfg.AGENT_TOP_K,
            min_relevance_score=cfg.AGENT_MIN_RELEVANCE_SCORE,
            tool_timeout_ms=cfg.TOOL_TIMEOUT_MS,
        )


class AgentMetrics(BaseModel):
    """Frozen snapshot of one invocation's counters."""

    model_config = ConfigDict(frozen=True)

    iteration_count: int = 0
    tool_calls_count: int = 0
    tool_usage_counts: Dict[str, int] = Field(default_factory=dict)
    documents_retrieved: int = 0
    total_duration_ms: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0
    estimated_cost: float = 0.0


class AgentResult(BaseModel):
    """Everything a caller gets back from one orchestration run."""

    model_config = ConfigDict(frozen=True)

    final_answer: str
    messages: List[Message] = Field(default_factory=list)
    tool_calls_executed: List[ToolCallRequest] = Field(default_factory=list)
    retrieved_documents: List[str] = Field(default_factory=list)
    citations: List[Citation] = Field(default_factory=list)
    metrics: AgentMetrics = Field(default_factory=AgentMetrics)
    exhausted: bool = False


class AgentEventType(str, Enum):
    """Kinds of progress events emitted while streaming."""

    REASONING = "reasoning"
    TOOL_CALL_START = "tool_call_start"
    TOOL_CALL_RESULT = "tool_call_result"
    CONTENT_COMPLETE = "content_complete"
    ERROR = "error"


class AgentEvent(BaseModel):
    """One progress event of a streamed run."""

    type: AgentEventType
    content: Optional[str] = None
    tool_call: Optional[ToolCallRequest] = None
    outcome: Optional[ToolOutcome] = None
