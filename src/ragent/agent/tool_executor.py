"""Dispatches tool calls registered in a :class:`~ragent.tools.ToolRegistry` and wraps errors."""

import asyncio
import functools
import inspect
import json
import logging
from typing import (
    Any,
    Dict,
    List,
    Mapping,
    Sequence,
    Tuple,
)

from pydantic import BaseModel

from ragent.core.schema import (
    ToolCallRequest,
    ToolDefinition,
    ToolErrorKind,
    ToolOutcome,
    ToolParameter,
)
from ragent.tools import (
    ToolCapability,
    ToolRegistry,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 30_000


class ToolArgumentError(ValueError):
    """Raised internally when arguments do not match a tool's parameter schema."""


class _ToolRaisedTimeout(RuntimeError):
    """A ``TimeoutError`` raised by the tool itself, kept apart from the executor's timeout."""


def _matches_type(value: Any, expected: str) -> bool:
    # bool is an int subclass; keep it out of the numeric types
    if expected == "string":
        return isinstance(value, str)
    if expected == "integer":
        return isinstance(value, int) and not isinstance(value, bool)
    if expected == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if expected == "boolean":
        return isinstance(value, bool)
    if expected == "array":
        return isinstance(value, (list, tuple))
    if expected == "object":
        return isinstance(value, Mapping)
    return True


def validate_arguments(definition: ToolDefinition, arguments: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Check *arguments* against *definition* and return them with defaults filled in.

    Raises
    ------
    ToolArgumentError
        On a missing required parameter, an undeclared parameter, a value of the wrong type or a
        value outside the declared choices.
    """
    declared: Dict[str, ToolParameter] = {p.name: p for p in definition.parameters}

    for param in definition.parameters:
        if param.required and arguments.get(param.name) is None:
            raise ToolArgumentError(f"Required parameter '{param.name}' is missing")

    resolved: Dict[str, Any] = {}
    for key, value in arguments.items():
        param = declared.get(key)
        if param is None:
            raise ToolArgumentError(f"Unknown parameter '{key}'")
        if value is None and not param.required:
            continue
        if not _matches_type(value, param.type):
            raise ToolArgumentError(
                f"Parameter '{key}' has invalid type. Expected {param.type}, "
                f"got {type(value).__name__}"
            )
        if param.choices and value not in param.choices:
            raise ToolArgumentError(
                f"Parameter '{key}' must be one of: {', '.join(param.choices)}"
            )
        resolved[key] = value

    for param in definition.parameters:
        if param.name not in resolved and param.default is not None:
            resolved[param.name] = param.default
    return resolved


def normalize_result(value: Any) -> ToolOutcome:
    """Wrap whatever a capability returned into a :class:`ToolOutcome`."""
    if isinstance(value, ToolOutcome):
        return value
    if value is None:
        return ToolOutcome.ok("")
    if isinstance(value, str):
        return ToolOutcome.ok(value)
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")
    if isinstance(value, Mapping):
        data = dict(value)
        return ToolOutcome.ok(json.dumps(data, default=str, ensure_ascii=False), data)
    if isinstance(value, (list, tuple)):
        items = list(value)
        return ToolOutcome.ok(
            json.dumps(items, default=str, ensure_ascii=False), {"items": items}
        )
    return ToolOutcome.ok(str(value))


class ToolExecutor:
    """
    Runs one tool call at a time (or one batch) against a registry.

    Every fault a tool can produce (unknown name, bad arguments, timeout, exception) comes back as
    a failed :class:`ToolOutcome`; :meth:`execute` only raises on task cancellation.
    """

    def __init__(self, registry: ToolRegistry, default_timeout_ms: int = DEFAULT_TIMEOUT_MS):
        self._registry = registry
        self._default_timeout_ms = default_timeout_ms

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    def prepare(self, request: ToolCallRequest) -> Tuple[ToolCapability, Dict[str, Any]] | ToolOutcome:
        """Resolve and validate *request*; a failed outcome is returned instead of raising."""
        entry = self._registry.resolve(request.tool_name)
        if entry is None:
            return ToolOutcome.fail(f"unknown tool: {request.tool_name}", ToolErrorKind.NOT_FOUND)
        definition, capability = entry
        try:
            arguments = validate_arguments(definition, request.arguments)
        except ToolArgumentError as exc:
            return ToolOutcome.fail(
                f"Invalid arguments for tool '{request.tool_name}': {exc}",
                ToolErrorKind.ARGUMENT_INVALID,
            )
        return capability, arguments

    async def execute(self, request: ToolCallRequest, timeout_ms: int | None = None) -> ToolOutcome:
        """
        Validate *request*, invoke its capability under a timeout and normalise the outcome.

        Parameters
        ----------
        request:
            The tool call to run.
        timeout_ms:
            Per-call timeout; falls back to the executor default when *None*.
        """
        timeout_ms = timeout_ms or self._default_timeout_ms
        prepared = self.prepare(request)
        if isinstance(prepared, ToolOutcome):
            logger.warning("Tool call '%s' rejected: %s", request.tool_name, prepared.error)
            return prepared
        capability, arguments = prepared

        try:
            logger.debug("Executing tool '%s' with args=%s", request.tool_name, arguments)
            value = await asyncio.wait_for(
                self._invoke_guarded(capability, arguments), timeout=timeout_ms / 1000
            )
        except asyncio.TimeoutError:
            logger.warning("Tool '%s' timed out after %dms", request.tool_name, timeout_ms)
            return ToolOutcome.fail(f"timeout after {timeout_ms}ms", ToolErrorKind.TIMEOUT)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unhandled error in tool '%s'", request.tool_name)
            return ToolOutcome.fail(
                f"Tool '{request.tool_name}' raised an error: {exc}",
                ToolErrorKind.EXECUTION_FAILED,
            )

        try:
            return normalize_result(value)
        except (TypeError, ValueError) as exc:
            logger.exception("Tool '%s' returned an unusable value", request.tool_name)
            return ToolOutcome.fail(
                f"Tool '{request.tool_name}' returned an unusable value: {exc}",
                ToolErrorKind.EXECUTION_FAILED,
            )

    def spawn(
        self,
        requests: Sequence[ToolCallRequest],
        timeout_ms: int | None = None,
        max_concurrency: int | None = None,
    ) -> List["asyncio.Task[ToolOutcome]"]:
        """
        Start one task per request, at most *max_concurrency* running at a time.

        The concurrency limit defaults to the batch size.  Must be called from a running
        event loop; the caller owns the returned tasks (await or cancel them).
        """
        if not requests:
            return []
        semaphore = asyncio.Semaphore(max_concurrency or len(requests))

        async def _bounded(request: ToolCallRequest) -> ToolOutcome:
            async with semaphore:
                return await self.execute(request, timeout_ms)

        return [asyncio.create_task(_bounded(r)) for r in requests]

    async def execute_many(
        self,
        requests: Sequence[ToolCallRequest],
        timeout_ms: int | None = None,
        max_concurrency: int | None = None,
    ) -> List[ToolOutcome]:
        """Run *requests* concurrently and return their outcomes in request order."""
        return list(await asyncio.gather(*self.spawn(requests, timeout_ms, max_concurrency)))

    async def _invoke_guarded(self, capability: ToolCapability, arguments: Dict[str, Any]) -> Any:
        # asyncio.TimeoutError is the builtin TimeoutError on 3.11+
        try:
            return await self._invoke(capability, arguments)
        except asyncio.TimeoutError as exc:
            raise _ToolRaisedTimeout(str(exc) or "TimeoutError") from exc

    @staticmethod
    async def _invoke(capability: ToolCapability, arguments: Dict[str, Any]) -> Any:
        if inspect.iscoroutinefunction(capability) or inspect.iscoroutinefunction(
            getattr(capability, "__call__", None)
        ):
            return await capability(**arguments)
        result = await asyncio.to_thread(functools.partial(capability, **arguments))
        if inspect.isawaitable(result):
            return await result
        return result
