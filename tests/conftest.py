"""
Shared fixtures: a scripted planner and a small tool registry.

Run with:
$ pytest -q
"""

from typing import (
    Any,
    Callable,
    Dict,
    List,
    Sequence,
    Union,
)

import pytest

from ragent.agent.planner_interface import BasePlanner
from ragent.core.schema import (
    Decision,
    FinalAnswer,
    Message,
    ToolCallBatch,
    ToolCallRequest,
    ToolParameter,
)
from ragent.tools import ToolRegistry

Step = Union[Decision, Exception, Callable[[Sequence[Message]], Decision]]


def batch(*calls: tuple, reasoning: str | None = None) -> ToolCallBatch:
    """``batch(("add", {"a": 1, "b": 2}))`` -> a fresh ToolCallBatch (new call ids every time)."""
    return ToolCallBatch(
        calls=[ToolCallRequest(tool_name=name, arguments=dict(args)) for name, args in calls],
        reasoning=reasoning,
    )


class ScriptedPlanner(BasePlanner):
    """Replays *steps* in order.  Callables are invoked with the conversation so far."""

    name = "scripted"

    def __init__(self, steps: Sequence[Step]):
        self._steps = list(steps)
        self.requests: List[Dict[str, Any]] = []

    async def decide(self, system_prompt, messages, tool_catalog) -> Decision:
        self.requests.append(
            {"system_prompt": system_prompt, "messages": list(messages), "tool_catalog": list(tool_catalog)}
        )
        if not self._steps:
            raise AssertionError("planner called more often than scripted")
        step = self._steps.pop(0)
        if isinstance(step, Exception):
            raise step
        if callable(step):
            return step(messages)
        return step

    async def _complete(self, system_prompt, transcript):  # pragma: no cover
        raise NotImplementedError


class RepeatingPlanner(BasePlanner):
    """Always asks for the same tool call; answers *final* once the tool catalog is empty."""

    name = "repeating"

    def __init__(self, tool_name: str, arguments: Dict[str, Any], final: str | None = None):
        self.tool_name = tool_name
        self.arguments = arguments
        self.final = final
        self.calls = 0

    async def decide(self, system_prompt, messages, tool_catalog) -> Decision:
        self.calls += 1
        if not tool_catalog and self.final is not None:
            return FinalAnswer(text=self.final)
        return batch((self.tool_name, {**self.arguments, "n": self.calls}))

    async def _complete(self, system_prompt, transcript):  # pragma: no cover
        raise NotImplementedError


@pytest.fixture
def registry() -> ToolRegistry:
    """Registry with ``add`` (sync), ``echo`` (async) and ``boom`` (always raises)."""
    reg = ToolRegistry()

    @reg.tool("add")
    def add(a: int, b: int) -> int:
        """Return the sum of two integers."""
        return a + b

    @reg.tool(
        "echo",
        parameters=[
            ToolParameter(name="text", type="string", required=True),
            ToolParameter(name="n", type="integer"),
        ],
    )
    async def echo(text: str, n: int | None = None) -> str:
        return text

    @reg.tool("boom", parameters=[ToolParameter(name="n", type="integer")])
    def boom(n: int | None = None) -> str:
        raise RuntimeError("kaboom")

    return reg
