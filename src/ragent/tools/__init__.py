"""
Tool registry for ragent.

A :class:`ToolRegistry` maps a tool name to its :class:`ToolDefinition` and the callable that
implements it.  Registries are constructed explicitly (normally once at startup, see
:mod:`ragent.tools.builtin`) and handed to the orchestrator; there is no process-wide registry.

Tools are callables invoked with keyword arguments.  They may be plain functions or coroutine
functions and may return a string, a mapping, a pydantic model or a ready-made ``ToolOutcome``.
"""

import inspect
import logging
import threading
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Optional,
    Sequence,
    Tuple,
    get_type_hints,
)

from ragent.core.schema import (
    ParameterType,
    ToolCategory,
    ToolDefinition,
    ToolParameter,
)

logger = logging.getLogger(__name__)

ToolCapability = Callable[..., Any]


class DuplicateToolError(ValueError):
    """Raised when a tool name is registered twice."""


class ToolNotFoundError(LookupError):
    """Raised when a tool name is not present in the registry."""


_PY_TO_PARAM_TYPE: Dict[type, ParameterType] = {
    str: "string",
    bool: "boolean",
    int: "integer",
    float: "number",
    list: "array",
    tuple: "array",
    dict: "object",
}


def parameters_from_signature(fn: Callable) -> List[ToolParameter]:
    """Extract parameter information from a tool function's signature."""
    sig = inspect.signature(fn)
    type_hints = get_type_hints(fn)
    params: List[ToolParameter] = []
    for param_name, param in sig.parameters.items():
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        hint = type_hints.get(param_name)
        origin = getattr(hint, "__origin__", None) or hint
        param_type = _PY_TO_PARAM_TYPE.get(origin, "any") if isinstance(origin, type) else "any"
        required = param.default is inspect.Parameter.empty
        params.append(
            ToolParameter(
                name=param_name,
                type=param_type,
                required=required,
                default=None if required else param.default,
            )
        )
    return params


class ToolRegistry:
    """
    Catalog of tool definitions and their capabilities.

    Registration takes a lock; lookups read a dict that is only ever replaced, never mutated in
    place, so concurrent orchestrations can read without locking.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, Tuple[ToolDefinition, ToolCapability]] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------ #
    # Registration
    # ------------------------------------------------------------------ #
    def register(self, definition: ToolDefinition, capability: ToolCapability) -> None:
        """
        Register *capability* under ``definition.name``.

        Raises
        ------
        DuplicateToolError
            If a tool with the same name is already registered.
        """
        if not callable(capability):
            raise TypeError(f"Capability for tool '{definition.name}' is not callable")
        with self._lock:
            if definition.name in self._entries:
                raise DuplicateToolError(f"Tool '{definition.name}' is already registered.")
            logger.debug("Registering tool '%s'", definition.name)
            entries = dict(self._entries)
            entries[definition.name] = (definition, capability)
            self._entries = entries

    def tool(
        self,
        name: str,
        description: str | None = None,
        parameters: Sequence[ToolParameter] | None = None,
        category: ToolCategory = ToolCategory.CUSTOM,
        tags: Sequence[str] = (),
    ) -> Callable[[ToolCapability], ToolCapability]:
        """
        Decorator form of :meth:`register`.

        When *parameters* is omitted they are derived from the function signature; the docstring
        stands in for a missing *description*::

            @registry.tool("add")
            def add(a: int, b: int) -> int:
                \"\"\"Add two integers.\"\"\"
                return a + b
        """

        def wrapper(fn: ToolCapability) -> ToolCapability:
            definition = ToolDefinition(
                name=name,
                description=description if description is not None else (fn.__doc__ or "").strip(),
                parameters=list(parameters) if parameters is not None else parameters_from_signature(fn),
                category=category,
                tags=list(tags),
            )
            self.register(definition, fn)
            return fn

        return wrapper

    # ------------------------------------------------------------------ #
    # Lookup
    # ------------------------------------------------------------------ #
    def lookup(self, name: str) -> ToolCapability:
        """Return the capability registered as *name* or raise :class:`ToolNotFoundError`."""
        entry = self._entries.get(name)
        if entry is None:
            raise ToolNotFoundError(f"Tool '{name}' is not registered.")
        return entry[1]

    def get_definition(self, name: str) -> ToolDefinition:
        entry = self._entries.get(name)
        if entry is None:
            raise ToolNotFoundError(f"Tool '{name}' is not registered.")
        return entry[0]

    def resolve(self, name: str) -> Optional[Tuple[ToolDefinition, ToolCapability]]:
        """Definition and capability for *name*, or ``None``."""
        return self._entries.get(name)

    def has(self, name: str) -> bool:
        return name in self._entries

    def list(self) -> List[ToolDefinition]:
        """All definitions in registration order."""
        return [definition for definition, _ in self._entries.values()]

    def by_category(self, category: ToolCategory) -> List[ToolDefinition]:
        return [d for d in self.list() if d.category == category]

    def search(self, query: str) -> List[ToolDefinition]:
        """Case-insensitive match of *query* against names, descriptions and tags."""
        needle = query.lower()
        return [
            d
            for d in self.list()
            if needle in d.name.lower()
            or needle in d.description.lower()
            or any(needle in tag.lower() for tag in d.tags)
        ]

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)
