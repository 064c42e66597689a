"""Registration, lookup and discovery in the tool registry."""

import pytest

from ragent.core.schema import (
    ToolCategory,
    ToolDefinition,
    ToolParameter,
)
from ragent.tools import (
    DuplicateToolError,
    ToolNotFoundError,
    ToolRegistry,
    parameters_from_signature,
)


def _noop(**_):
    return "ok"


def test_register_and_lookup() -> None:
    """A registered capability is returned by lookup."""

    reg = ToolRegistry()
    reg.register(ToolDefinition(name="a"), _noop)
    assert reg.lookup("a") is _noop
    assert "a" in reg
    assert len(reg) == 1


def test_duplicate_name_is_rejected() -> None:
    """Registering the same name twice fails and keeps the first entry."""

    reg = ToolRegistry()
    reg.register(ToolDefinition(name="a", description="first"), _noop)
    with pytest.raises(DuplicateToolError, match="'a'"):
        reg.register(ToolDefinition(name="a", description="second"), _noop)
    assert reg.get_definition("a").description == "first"


def test_lookup_unknown_raises() -> None:
    """Unknown names raise ToolNotFoundError."""

    with pytest.raises(ToolNotFoundError):
        ToolRegistry().lookup("missing")


def test_list_keeps_registration_order() -> None:
    """Definitions are listed in registration order."""

    reg = ToolRegistry()
    for name in ["zeta", "alpha", "mid"]:
        reg.register(ToolDefinition(name=name), _noop)
    assert [d.name for d in reg.list()] == ["zeta", "alpha", "mid"]


def test_decorator_derives_parameters_and_description() -> None:
    """The decorator reads the signature and docstring."""

    reg = ToolRegistry()

    @reg.tool("greet", category=ToolCategory.CUSTOM, tags=["demo"])
    def greet(name: str, times: int = 1, loud: bool = False) -> str:
        """Say hello."""
        return ("hello " + name) * times

    definition = reg.get_definition("greet")
    assert definition.description == "Say hello."
    assert [(p.name, p.type, p.required) for p in definition.parameters] == [
        ("name", "string", True),
        ("times", "integer", False),
        ("loud", "boolean", False),
    ]
    assert definition.parameter("times").default == 1


def test_parameters_from_signature_skips_var_args() -> None:
    """*args and **kwargs are not parameters."""

    def fn(query: str, *args, **kwargs):
        return query

    assert [p.name for p in parameters_from_signature(fn)] == ["query"]


def test_search_and_category() -> None:
    """Discovery matches names, descriptions and tags."""

    reg = ToolRegistry()
    reg.register(ToolDefinition(name="rag_search", description="Search documents", category=ToolCategory.RAG), _noop)
    reg.register(ToolDefinition(name="memory", tags=["persistence"], category=ToolCategory.MEMORY), _noop)

    assert [d.name for d in reg.search("DOCUMENTS")] == ["rag_search"]
    assert [d.name for d in reg.search("persist")] == ["memory"]
    assert [d.name for d in reg.by_category(ToolCategory.MEMORY)] == ["memory"]


def test_definition_rejects_repeated_parameter() -> None:
    """Parameter names are unique within a tool."""

    with pytest.raises(ValueError):
        ToolDefinition(name="t", parameters=[ToolParameter(name="x"), ToolParameter(name="x")])


def test_register_requires_callable() -> None:
    """Only callables can be registered."""

    with pytest.raises(TypeError):
        ToolRegistry().register(ToolDefinition(name="t"), "not callable")
