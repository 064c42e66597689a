"""Per-invocation counters: iterations, tool usage, retrieved documents, duration and cost."""

import time
from collections import Counter
from typing import Optional

from ragent.agent import cost
from ragent.core.schema import (
    AgentMetrics,
    TokenUsage,
)


class MetricsAggregator:
    """
    Mutable accumulator owned by one orchestration run.

    :meth:`freeze` produces the immutable :class:`AgentMetrics` snapshot stored on the result.
    """

    def __init__(self) -> None:
        self._started = time.monotonic()
        self.iteration_count = 0
        self.tool_calls_count = 0
        self.tool_usage = Counter()
        self.documents_retrieved = 0
        self.input_tokens = 0
        self.output_tokens = 0
        self._chat_cost = 0.0

    def start_iteration(self) -> int:
        self.iteration_count += 1
        return self.iteration_count

    def record_tool_call(self, tool_name: str, documents: int = 0) -> None:
        """Count one executed tool call and the documents it retrieved."""
        self.tool_calls_count += 1
        self.tool_usage[tool_name] += 1
        self.documents_retrieved += documents

    def record_usage(self, usage: Optional[TokenUsage], prompt_chars: int = 0) -> None:
        """
        Add the cost of one reasoning call.

        Reported token usage is priced per model; without it the prompt/response size in
        characters is converted to an estimated token count.
        """
        if usage is not None:
            self.input_tokens += usage.input_tokens
            self.output_tokens += usage.output_tokens
            self._chat_cost += cost.usage_cost(usage)
            return
        tokens = cost.estimate_tokens(prompt_chars)
        self.input_tokens += tokens
        self._chat_cost += cost.estimated_tokens_cost(tokens)

    @property
    def estimated_cost(self) -> float:
        return self._chat_cost + self.tool_calls_count * cost.TOOL_CALL_COST

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self._started) * 1000

    def freeze(self) -> AgentMetrics:
        return AgentMetrics(
            iteration_count=self.iteration_count,
            tool_calls_count=self.tool_calls_count,
            tool_usage_counts=dict(self.tool_usage),
            documents_retrieved=self.documents_retrieved,
            total_duration_ms=round(self.elapsed_ms, 3),
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            estimated_cost=round(self.estimated_cost, 6),
        )
