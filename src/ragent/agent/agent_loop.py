"""
Main orchestration loop for ragent.

:class:`AgentOrchestrator` turns one user message into a final answer.  It asks the planner for a
decision, runs requested tool batches through the :class:`~ragent.agent.tool_executor.ToolExecutor`,
folds every outcome back into the conversation, and stops on a final answer or when the tool-call
ceiling is reached::

    INIT -> DECIDING -> ANSWERING ------------------------> DONE
                     -> DISPATCHING -> DECIDING (loop)
                                    -> EXHAUSTED --------> DONE
"""

import asyncio
import logging
from dataclasses import (
    dataclass,
    field,
)
from enum import Enum
from typing import (
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Sequence,
)

from ragent.agent.citations import (
    dedupe_citations,
    extract_citations,
    retrieved_documents,
)
from ragent.agent.conversation import (
    Conversation,
    ConversationOrderError,
    render_transcript,
)
from ragent.agent.metrics import MetricsAggregator
from ragent.agent.planner_interface import (
    DEFAULT_SYSTEM_PROMPT,
    BasePlanner,
    ReasoningCapabilityUnavailable,
)
from ragent.agent.tool_executor import ToolExecutor
from ragent.core.schema import (
    AgentConfig,
    AgentEvent,
    AgentEventType,
    AgentResult,
    Citation,
    Decision,
    FinalAnswer,
    Message,
    ToolCallBatch,
    ToolCallRequest,
    ToolDefinition,
    ToolOutcome,
)
from ragent.tools import ToolRegistry

logger = logging.getLogger(__name__)

EMPTY_ANSWER = "⚠️ Planner returned nothing."

WRAP_UP_INSTRUCTION = (
    "You have reached the tool-call limit for this request. Do not request any more tools. "
    "Answer the user now, using only the tool results already present in the conversation."
)

EventSink = Callable[[AgentEvent], Awaitable[None]]


class AgentState(str, Enum):
    INIT = "init"
    DECIDING = "deciding"
    ANSWERING = "answering"
    DISPATCHING = "dispatching"
    EXHAUSTED = "exhausted"
    DONE = "done"


class AgentCancelledError(RuntimeError):
    """
    Raised when a run is cancelled through its cancellation event.

    ``late_outcomes`` holds tool outcomes that completed in the interrupted batch.  They were never
    shown to the planner and are kept for telemetry only.
    """

    def __init__(self, message: str = "Agent run was cancelled", late_outcomes: Iterable[ToolOutcome] = ()):
        super().__init__(message)
        self.late_outcomes: List[ToolOutcome] = list(late_outcomes)


@dataclass
class _Invocation:
    """Mutable state owned by exactly one run."""

    config: AgentConfig
    conversation: Conversation
    tenant_scope: Optional[str] = None
    cancel_event: Optional[asyncio.Event] = None
    emit: Optional[EventSink] = None
    state: AgentState = AgentState.INIT
    metrics: MetricsAggregator = field(default_factory=MetricsAggregator)
    cache: Dict[str, ToolOutcome] = field(default_factory=dict)
    executed: List[ToolCallRequest] = field(default_factory=list)
    citations: List[Citation] = field(default_factory=list)
    documents: List[str] = field(default_factory=list)
    contents: List[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------
class AgentOrchestrator:
    """
    Drives the decide / dispatch loop for one request at a time.

    The orchestrator itself is stateless between runs and can be shared by concurrent requests:
    every run gets its own conversation, metrics and duplicate-call cache.

    Parameters
    ----------
    planner:
        The reasoning capability.
    registry:
        Tools the planner may call.  Treated as read-only.
    executor:
        Optional executor; one is built over *registry* when omitted.
    default_config:
        Used when :meth:`run` is called without a config.
    """

    def __init__(
        self,
        planner: BasePlanner,
        registry: ToolRegistry,
        executor: ToolExecutor | None = None,
        default_config: AgentConfig | None = None,
    ):
        self._planner = planner
        self._registry = registry
        self._executor = executor or ToolExecutor(registry)
        self._default_config = default_config or AgentConfig()

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    # ------------------------------------------------------------------ #
    # Public entry points
    # ------------------------------------------------------------------ #
    async def run(
        self,
        message: str,
        history: Sequence[Message] = (),
        config: AgentConfig | None = None,
        tenant_scope: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> AgentResult:
        """
        Answer *message* given the prior *history*.

        Raises
        ------
        ReasoningCapabilityUnavailable
            The planner failed; the run is abandoned without retrying.
        AgentCancelledError
            *cancel_event* was set before the run finished.
        ConversationOrderError
            *history* contains a tool result without its call (or a call without its result).
        """
        return await self._execute(message, history, config, tenant_scope, cancel_event, None)

    async def stream(
        self,
        message: str,
        history: Sequence[Message] = (),
        config: AgentConfig | None = None,
        tenant_scope: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[AgentEvent]:
        """Like :meth:`run`, but yield progress events; the last one is ``content_complete`` or ``error``."""
        queue: asyncio.Queue = asyncio.Queue()

        async def _emit(event: AgentEvent) -> None:
            await queue.put(event)

        task = asyncio.create_task(
            self._execute(message, history, config, tenant_scope, cancel_event, _emit)
        )
        task.add_done_callback(lambda _: queue.put_nowait(None))
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield event

            try:
                result = task.result()
            except (ReasoningCapabilityUnavailable, AgentCancelledError, ConversationOrderError) as exc:
                yield AgentEvent(type=AgentEventType.ERROR, content=str(exc))
                return
            yield AgentEvent(type=AgentEventType.CONTENT_COMPLETE, content=result.final_answer)
        finally:
            if not task.done():
                task.cancel()

    # ------------------------------------------------------------------ #
    # State machine
    # ------------------------------------------------------------------ #
    async def _execute(
        self,
        message: str,
        history: Sequence[Message],
        config: AgentConfig | None,
        tenant_scope: str | None,
        cancel_event: asyncio.Event | None,
        emit: EventSink | None,
    ) -> AgentResult:
        config = config or self._default_config
        conversation = Conversation(history)
        if conversation.pending_calls():
            raise ConversationOrderError("History contains tool calls without results")
        conversation.add_user(message)
        run = _Invocation(
            config=config,
            conversation=conversation,
            tenant_scope=tenant_scope,
            cancel_event=cancel_event,
            emit=emit,
        )

        if config.use_retrieval_context:
            await self._prefetch(run, message)

        system_prompt = config.system_prompt or DEFAULT_SYSTEM_PROMPT
        catalog = self._registry.list()
        final_answer: Optional[str] = None
        exhausted = False

        while final_answer is None:
            self._transition(run, AgentState.DECIDING)
            decision = await self._decide(run, system_prompt, catalog)

            if isinstance(decision, FinalAnswer):
                self._transition(run, AgentState.ANSWERING)
                final_answer = decision.text.strip() or EMPTY_ANSWER
                break

            self._transition(run, AgentState.DISPATCHING)
            iteration = run.metrics.start_iteration()
            logger.info(
                "Iteration %d: planner requested %d tool calls: %s",
                iteration,
                len(decision.calls),
                [call.tool_name for call in decision.calls],
            )
            await self._dispatch(run, decision)

            # The ceiling is only checked once the whole batch has run
            if iteration >= config.max_tool_calls:
                self._transition(run, AgentState.EXHAUSTED)
                exhausted = True
                final_answer = await self._wrap_up(run, system_prompt)

        conversation.add_assistant(final_answer)
        self._transition(run, AgentState.DONE)
        metrics = run.metrics.freeze()
        logger.info(
            "Run finished: iterations=%d tool_calls=%d exhausted=%s duration=%.1fms",
            metrics.iteration_count,
            metrics.tool_calls_count,
            exhausted,
            metrics.total_duration_ms,
        )
        return AgentResult(
            final_answer=final_answer,
            messages=list(conversation.messages),
            tool_calls_executed=run.executed,
            retrieved_documents=run.documents,
            citations=dedupe_citations(run.citations),
            metrics=metrics,
            exhausted=exhausted,
        )

    @staticmethod
    def _transition(run: _Invocation, state: AgentState) -> None:
        logger.debug("Agent state %s -> %s", run.state.value, state.value)
        run.state = state

    async def _decide(
        self, run: _Invocation, system_prompt: str, catalog: Sequence[ToolDefinition]
    ) -> Decision:
        self._check_cancelled(run)
        messages = run.conversation.messages
        try:
            decision = await self._planner.decide(system_prompt, messages, catalog)
        except ReasoningCapabilityUnavailable:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Reasoning capability failed")
            raise ReasoningCapabilityUnavailable(str(exc)) from exc

        output = decision.text if isinstance(decision, FinalAnswer) else (decision.reasoning or "")
        run.metrics.record_usage(
            decision.usage, len(system_prompt) + len(render_transcript(messages)) + len(output)
        )
        if isinstance(decision, ToolCallBatch) and decision.reasoning:
            await self._emit(run, AgentEventType.REASONING, content=decision.reasoning)
        return decision

    async def _prefetch(self, run: _Invocation, message: str) -> None:
        """Run the retrieval tool once for *message* before the first decision."""
        name = run.config.retrieval_tool
        if not self._registry.has(name):
            logger.debug("Retrieval tool '%s' is not registered; skipping prefetch", name)
            return
        definition = self._registry.get_definition(name)
        candidates = {
            "query": message,
            "top_k": run.config.top_k,
            "min_score": run.config.min_relevance_score,
        }
        arguments = {k: v for k, v in candidates.items() if definition.parameter(k) is not None}
        request = ToolCallRequest(
            tool_name=name,
            arguments=arguments,
            reasoning_trace="Retrieve context relevant to the user message",
        )
        await self._dispatch(run, ToolCallBatch(calls=[request]))

    async def _dispatch(self, run: _Invocation, batch: ToolCallBatch) -> None:
        calls = [self._scope(call, run.tenant_scope) for call in batch.calls]

        outcomes: List[Optional[ToolOutcome]] = [None] * len(calls)
        to_run: List[int] = []
        for i, call in enumerate(calls):
            cached = run.cache.get(call.fingerprint())
            if cached is not None:
                logger.info("Reusing earlier result for duplicate call to '%s'", call.tool_name)
                outcomes[i] = cached
            else:
                to_run.append(i)
            await self._emit(run, AgentEventType.TOOL_CALL_START, tool_call=call)

        results = await self._run_batch(run, [calls[i] for i in to_run])
        for i, outcome in zip(to_run, results):
            outcomes[i] = outcome

        executed = set(to_run)
        for i, (call, outcome) in enumerate(zip(calls, outcomes)):
            run.conversation.add_tool_exchange(call, outcome)
            await self._emit(run, AgentEventType.TOOL_CALL_RESULT, tool_call=call, outcome=outcome)
            if i not in executed:
                continue

            docs = retrieved_documents(outcome)
            run.metrics.record_tool_call(call.tool_name, len(docs))
            run.executed.append(call)
            if not outcome.success:
                logger.warning("Tool '%s' failed: %s", call.tool_name, outcome.error)
                continue
            run.cache[call.fingerprint()] = outcome
            if outcome.content:
                run.contents.append(outcome.content)
            for citation in extract_citations(outcome):
                run.citations.append(citation)
                if citation.document_id not in run.documents:
                    run.documents.append(citation.document_id)

    def _scope(self, call: ToolCallRequest, tenant_scope: str | None) -> ToolCallRequest:
        """Force the caller's tenant into calls to tools that take a ``tenant_id``."""
        if tenant_scope is None:
            return call
        entry = self._registry.resolve(call.tool_name)
        if entry is None or entry[0].parameter("tenant_id") is None:
            return call
        return call.with_arguments({**call.arguments, "tenant_id": tenant_scope})

    async def _run_batch(self, run: _Invocation, calls: List[ToolCallRequest]) -> List[ToolOutcome]:
        if not calls:
            return []
        timeout_ms = run.config.tool_timeout_ms
        if run.config.allow_parallel_tool_calls:
            if run.cancel_event is None:
                return await self._executor.execute_many(calls, timeout_ms)
            return await self._join(run, self._executor.spawn(calls, timeout_ms))

        outcomes: List[ToolOutcome] = []
        for call in calls:
            try:
                outcomes.extend(await self._join(run, self._executor.spawn([call], timeout_ms)))
            except AgentCancelledError as exc:
                raise AgentCancelledError(late_outcomes=[*outcomes, *exc.late_outcomes]) from None
        return outcomes

    async def _join(self, run: _Invocation, tasks: List[asyncio.Task]) -> List[ToolOutcome]:
        """Wait for every task, unless the run is cancelled first."""
        if run.cancel_event is None:
            return list(await asyncio.gather(*tasks))

        stopper = asyncio.create_task(run.cancel_event.wait())
        waiting = set(tasks)
        try:
            while waiting:
                done, _ = await asyncio.wait(waiting | {stopper}, return_when=asyncio.FIRST_COMPLETED)
                waiting -= done
                if stopper in done:
                    late = [t.result() for t in tasks if t.done() and not t.cancelled()]
                    for task in tasks:
                        task.cancel()
                    await asyncio.gather(*tasks, return_exceptions=True)
                    logger.info("Run cancelled mid-batch; %d outcomes discarded", len(late))
                    raise AgentCancelledError(late_outcomes=late)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise
        finally:
            stopper.cancel()
        return [task.result() for task in tasks]

    async def _wrap_up(self, run: _Invocation, system_prompt: str) -> str:
        """One last tool-free decision; fall back to the tool contents gathered so far."""
        try:
            decision = await self._decide(run, f"{system_prompt.rstrip()}\n\n{WRAP_UP_INSTRUCTION}", [])
        except ReasoningCapabilityUnavailable as exc:
            logger.warning("Wrap-up call failed (%s); returning a partial answer", exc)
        else:
            if isinstance(decision, FinalAnswer) and decision.text.strip():
                return decision.text.strip()
            logger.info("Planner kept requesting tools after the limit; returning a partial answer")

        count = run.metrics.tool_calls_count
        if not run.contents:
            return (
                f"I'm sorry, I could not complete this request: none of the {count} tool calls "
                "returned usable results."
            )
        return f"Partial answer based on {count} tool calls:\n\n" + "\n\n".join(run.contents)

    @staticmethod
    def _check_cancelled(run: _Invocation) -> None:
        if run.cancel_event is not None and run.cancel_event.is_set():
            logger.info("Run cancelled before the next reasoning call")
            raise AgentCancelledError()

    @staticmethod
    async def _emit(run: _Invocation, event_type: AgentEventType, **fields) -> None:
        if run.emit is not None:
            await run.emit(AgentEvent(type=event_type, **fields))
