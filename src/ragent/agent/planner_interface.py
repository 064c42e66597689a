"""
Planner interface for ragent.

This module is the only place that *directly* calls an LLM.  Everything else (orchestration loop,
tools, memory) stays model-agnostic and talks to a :class:`BasePlanner` through one method,
:meth:`BasePlanner.decide`, which turns ``(system prompt, conversation, tool catalog)`` into either
a :class:`FinalAnswer` or a :class:`ToolCallBatch`.

We support three back-ends out of the box:

1. **Anthropic / OpenAI** via their async SDKs (requires env keys).
2. **Hugging Face Text-Generation-Inference (TGI)** for self-hosted models.

Additional providers can be added by subclassing :class:`BasePlanner` and registering via
:func:`register_planner`.  Planners do not retry; a failed call surfaces as
:class:`ReasoningCapabilityUnavailable`.
"""

import json
import logging
import re
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Optional,
    Sequence,
    Tuple,
    Type,
)

import httpx
from pydantic import (
    BaseModel,
    Field,
    ValidationError,
)

from ragent.agent.conversation import render_transcript
from ragent.config import settings
from ragent.core.schema import (
    Decision,
    FinalAnswer,
    Message,
    TokenUsage,
    ToolCallBatch,
    ToolCallRequest,
    ToolDefinition,
)

logger = logging.getLogger(__name__)


class ReasoningCapabilityUnavailable(RuntimeError):
    """Raised when the reasoning capability cannot be reached or fails to respond."""


DEFAULT_SYSTEM_PROMPT = """\
You are an intelligent AI agent with access to tools.
You can call tools to help answer user questions.

When you need to use a tool, respond in this JSON format:
{
  "reasoning": "Why you need this tool",
  "tool_calls": [
    {
      "tool_name": "tool_name_here",
      "arguments": {
        "param1": "value1"
      }
    }
  ]
}

IMPORTANT GUIDELINES:
- DO NOT call the same tool with the same arguments multiple times in one conversation turn
- After receiving tool results, USE THEM to formulate your answer instead of calling tools again
- Only call tools when you genuinely need NEW information that you don't already have

After tool results are provided, synthesize a final answer for the user.
If you can answer directly without tools, just provide the answer normally.
"""


# ---------------------------------------------------------------------------
# Pydantic models for response validation
# ---------------------------------------------------------------------------
class PlannerResponse(BaseModel):
    """Validates planner responses from LLMs."""

    reasoning: str | None = None
    tool_calls: List[Dict[str, Any]] = Field(default_factory=list)
    answer: str | None = None


def _sanitize_json_string(content: str) -> str:
    """Clean up JSON strings returned by LLMs."""
    # Strip markdown code blocks if present
    if "```" in content:
        match = re.search(r"```(?:json)?\s*(.+?)```", content, re.DOTALL)
        if match:
            content = match.group(1).strip()

    # Remove control characters except whitespace
    content = "".join(ch for ch in content if ch >= " " or ch in "\n\r\t")

    # Find the outermost matching braces, skipping braces inside string literals
    open_idx = content.find("{")
    if open_idx >= 0:
        depth = 0
        in_string = False
        escaped = False
        for i in range(open_idx, len(content)):
            ch = content[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
            elif ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return content[open_idx : i + 1]
    return content


def parse_decision(content: str, usage: TokenUsage | None = None) -> Decision:
    """
    Interpret raw model output as a final answer or a batch of tool calls.

    Accepted tool-call shapes are ``{"tool_calls": [{"tool_name": ..., "arguments": {...}}]}``
    (``name``/``args`` are accepted as aliases) and the single-call ``{"tool": ..., "args": {...}}``.
    ``{"answer": ...}`` is a final answer.  Anything else, malformed JSON included, is returned as
    a final answer equal to the raw text.
    """
    text = content.strip()
    if "{" not in text:
        return FinalAnswer(text=text, usage=usage)

    try:
        raw = json.loads(_sanitize_json_string(text))
    except json.JSONDecodeError:
        logger.debug("Planner output is not JSON; treating it as a final answer")
        return FinalAnswer(text=text, usage=usage)
    if not isinstance(raw, dict):
        return FinalAnswer(text=text, usage=usage)

    if "tool" in raw and "tool_calls" not in raw:
        raw = {
            "reasoning": raw.get("reasoning"),
            "tool_calls": [{"tool_name": raw["tool"], "arguments": raw.get("args", {})}],
        }

    try:
        parsed = PlannerResponse.model_validate(raw)
    except ValidationError as e:
        logger.error("Failed to parse LLM response: %s", e)
        return FinalAnswer(text=text, usage=usage)

    calls: List[ToolCallRequest] = []
    for call in parsed.tool_calls:
        name = call.get("tool_name") or call.get("name")
        arguments = call.get("arguments", call.get("args")) or {}
        if not isinstance(name, str) or not name or not isinstance(arguments, dict):
            logger.warning("Skipping malformed tool call in planner output: %s", call)
            continue
        calls.append(
            ToolCallRequest(tool_name=name, arguments=arguments, reasoning_trace=parsed.reasoning)
        )

    if calls:
        return ToolCallBatch(calls=calls, reasoning=parsed.reasoning, usage=usage)
    if parsed.answer is not None:
        return FinalAnswer(text=parsed.answer, usage=usage)
    return FinalAnswer(text=text, usage=usage)


def render_tool_catalog(tool_catalog: Sequence[ToolDefinition]) -> str:
    """Describe *tool_catalog* for inclusion in a system prompt."""
    if not tool_catalog:
        return "No tools are available. Answer the user directly."
    lines = ["Available tools:"]
    for tool in tool_catalog:
        lines.append(f"\n**{tool.name}**: {tool.description}")
        if tool.parameters:
            lines.append("Parameters:")
        for param in tool.parameters:
            required = "(required)" if param.required else "(optional)"
            line = f"  - {param.name} ({param.type}) {required}"
            if param.description:
                line += f": {param.description}"
            if param.choices:
                line += f" [one of: {', '.join(param.choices)}]"
            lines.append(line)
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_PLANNER_REGISTRY: dict[str, Type["BasePlanner"]] = {}


def register_planner(name: str) -> Callable:
    """Decorator to register a planner class under *name*."""

    def wrapper(cls: Type["BasePlanner"]) -> Type["BasePlanner"]:
        _PLANNER_REGISTRY[name] = cls
        return cls

    return wrapper


def load_planner(name: str | None = None, **kwargs: Any) -> "BasePlanner":
    """
    Factory that returns an instantiated planner.

    Fallback order:
    1. *name* arg
    2. ``settings.PLANNER`` env option
    3. default: ``"anthropic"``
    """

    target = name or getattr(settings, "PLANNER", "anthropic")
    cls = _PLANNER_REGISTRY.get(target.lower())
    if cls is None:
        raise ValueError(f"Planner '{target}' is not registered.")
    return cls(**kwargs)


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BasePlanner(ABC):
    """Abstract planner that converts conversation context -> tool calls / answer."""

    name: str = "planner"

    def _build_prompt(self, system_prompt: str, tool_catalog: Sequence[ToolDefinition]) -> str:
        return f"{system_prompt.rstrip()}\n\n{render_tool_catalog(tool_catalog)}"

    async def decide(
        self,
        system_prompt: str,
        messages: Sequence[Message],
        tool_catalog: Sequence[ToolDefinition],
    ) -> Decision:
        """Ask the model for the next step.  Failures raise :class:`ReasoningCapabilityUnavailable`."""
        prompt = self._build_prompt(system_prompt, tool_catalog)
        transcript = render_transcript(messages)
        try:
            content, usage = await self._complete(prompt, transcript)
        except ReasoningCapabilityUnavailable:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            logger.error("%s planner error: %s", self.name, exc)
            raise ReasoningCapabilityUnavailable(f"Error calling {self.name}: {exc}") from exc

        logger.debug("%s planner response: %s", self.name, content)
        return parse_decision(content, usage)

    @abstractmethod
    async def _complete(self, system_prompt: str, transcript: str) -> Tuple[str, Optional[TokenUsage]]:
        """Send one completion request; return the raw text and token usage if reported."""


# ---------------------------------------------------------------------------
# Concrete planners
# ---------------------------------------------------------------------------
@register_planner("tgi")
class TGIPlanner(BasePlanner):
    """TGI-based planner with an httpx async client."""

    name = "tgi"

    def __init__(self, endpoint: str | None = None, timeout: float | None = None):
        self.endpoint = endpoint or settings.TGI_ENDPOINT
        self.timeout = timeout or settings.PLANNER_TIMEOUT_S

    async def _complete(self, system_prompt: str, transcript: str) -> Tuple[str, Optional[TokenUsage]]:
        payload = {
            "inputs": f"{system_prompt}\n\n{transcript}\nAssistant:",
            "parameters": {
                "max_new_tokens": settings.PLANNER_MAX_TOKENS,
                "temperature": 0.2,
                "stop": ["User:", "</s>"],
            },
        }
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(self.endpoint, json=payload)
            resp.raise_for_status()
            return resp.json()["generated_text"], None


@register_planner("openai")
class OpenAIPlanner(BasePlanner):
    """OpenAI chat-completions planner."""

    name = "openai"

    def __init__(self, api_key: str | None = None, model: str | None = None):
        import openai  # pylint: disable=import-outside-toplevel

        self.model = model or settings.OPENAI_MODEL
        self._client = openai.AsyncOpenAI(
            api_key=api_key or settings.OPENAI_API_KEY, timeout=settings.PLANNER_TIMEOUT_S
        )

    async def _complete(self, system_prompt: str, transcript: str) -> Tuple[str, Optional[TokenUsage]]:
        resp = await self._client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": transcript},
            ],
            temperature=0.2,
            max_tokens=settings.PLANNER_MAX_TOKENS,
        )
        content = resp.choices[0].message.content or ""
        usage = None
        if resp.usage is not None:
            usage = TokenUsage(
                model=self.model,
                input_tokens=resp.usage.prompt_tokens,
                output_tokens=resp.usage.completion_tokens,
            )
        return content, usage


@register_planner("anthropic")
class AnthropicPlanner(BasePlanner):
    """Anthropic Claude-based planner."""

    name = "anthropic"

    def __init__(self, api_key: str | None = None, model: str | None = None):
        import anthropic  # pylint: disable=import-outside-toplevel

        self.model = model or settings.ANTHROPIC_MODEL
        self._client = anthropic.AsyncAnthropic(
            api_key=api_key or settings.ANTHROPIC_API_KEY, timeout=settings.PLANNER_TIMEOUT_S
        )

    async def _complete(self, system_prompt: str, transcript: str) -> Tuple[str, Optional[TokenUsage]]:
        response = await self._client.messages.create(
            model=self.model,
            max_tokens=settings.PLANNER_MAX_TOKENS,
            system=system_prompt,
            messages=[{"role": "user", "content": transcript}],
            temperature=0.2,
        )

        # Only text blocks carry the answer / JSON tool-call payload
        content = "".join(block.text for block in response.content if block.type == "text")
        usage = TokenUsage(
            model=self.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )
        return content, usage
