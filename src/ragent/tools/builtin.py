"""Startup wiring of the built-in tools into a :class:`ToolRegistry`."""

import logging
from pathlib import Path

import httpx

from ragent.config import (
    Settings,
    settings as default_settings,
)
from ragent.memory.memory_store import MemoryStore
from ragent.memory.vector_memory import VectorMemory
from ragent.tools import ToolRegistry
from ragent.tools.github_search import (
    GitHubSearchCodeTool,
    GitHubSearchRepositoriesTool,
)
from ragent.tools.memory_tool import MemoryTool
from ragent.tools.rag_search import (
    RagSearchTool,
    Retriever,
    VectorRetriever,
)

logger = logging.getLogger(__name__)


def build_default_registry(
    cfg: Settings | None = None,
    retriever: Retriever | None = None,
    memory_store: MemoryStore | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> ToolRegistry:
    """
    Register ``rag_search``, ``github_search_repositories``, ``github_search_code`` and ``memory``.

    Collaborators that are not passed in are built from *cfg* (Chroma collections, the memory
    audit log under ``DATA_DIR``).
    """
    cfg = cfg or default_settings
    if retriever is None:
        retriever = VectorRetriever(
            VectorMemory(
                collection_name=cfg.DOCUMENTS_COLLECTION, host=cfg.VECTOR_DB_HOST, port=cfg.VECTOR_DB_PORT
            )
        )
    if memory_store is None:
        memory_store = MemoryStore(
            VectorMemory(
                collection_name=cfg.MEMORY_COLLECTION, host=cfg.VECTOR_DB_HOST, port=cfg.VECTOR_DB_PORT
            ),
            log_path=Path(cfg.DATA_DIR) / "memories.jsonl",
        )
        memory_store.init()

    registry = ToolRegistry()
    tools = [
        RagSearchTool(retriever),
        GitHubSearchRepositoriesTool(token=cfg.GITHUB_TOKEN, base_url=cfg.GITHUB_API_URL, client=http_client),
        GitHubSearchCodeTool(token=cfg.GITHUB_TOKEN, base_url=cfg.GITHUB_API_URL, client=http_client),
        MemoryTool(memory_store),
    ]
    for tool in tools:
        registry.register(tool.definition, tool)
    logger.info("Registered %d built-in tools: %s", len(registry), [d.name for d in registry.list()])
    return registry
